from __future__ import annotations
import html
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from set_splitter.config import PipelineConfig, shopify_config_from_env
from set_splitter.errors import SKIP_ALREADY_PROCESSED, SKIP_COMPONENT, SKIP_IN_PROGRESS, SKIP_NOT_A_SET, SetSplitterError
from set_splitter.idempotency import SingleFlight
from set_splitter.pipeline import SetPipeline
from set_splitter.shopify_client import CatalogClient, ShopifyConfig
from set_splitter.visibility import hide_components, show_components, visibility_status
from . import db
from . import settings as app_settings


log = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = Path(os.getenv("SPLITSET_DATA_DIR", str(ROOT / "data")))

app = FastAPI(title="Set Splitter API", version="0.1.0")
db.init_db(DATA_DIR / "app.sqlite3")
app_settings.init_settings(DATA_DIR / "settings.json")

# One lock table per process; the pipeline skips an entry whose lock is held.
LOCKS = SingleFlight()

SKIP_REASONS = (SKIP_NOT_A_SET, SKIP_ALREADY_PROCESSED, SKIP_IN_PROGRESS, SKIP_COMPONENT)


class JobStatus(str):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    skipped = "skipped"
    failed = "failed"


class Job(BaseModel):
    id: str
    kind: str
    status: str
    entry_id: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    params: Dict
    result: Dict = {}
    error: Optional[str] = None
    counters: Dict = {}


JOBS: Dict[str, Job] = {}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _save(job: Job) -> None:
    try:
        db.update_job(job.model_dump())
    except Exception as e:
        log.warning(f"Persisting job {job.id} failed: {e}")


def _get_shopify_cfg() -> ShopifyConfig:
    # Prefer settings.json; fallback to env vars
    s = app_settings.get_settings()
    try:
        return shopify_config_from_env(s.get("shopify_store"), s.get("shopify_access_token"), s.get("shopify_api_version"))
    except ValueError as e:
        raise HTTPException(500, f"Shopify credentials missing. Set them in Settings or as environment variables. ({e})")


def get_client() -> CatalogClient:
    return CatalogClient(_get_shopify_cfg())


def _pipeline(client) -> SetPipeline:
    return SetPipeline(client, PipelineConfig.from_settings(app_settings.get_settings()), locks=LOCKS)


def _raise_upstream(result: Dict) -> Dict:
    if not result.get("success") and result.get("reason") == "upstream failure":
        raise HTTPException(502, result.get("error") or "upstream failure")
    return result


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# --- Read-only set inspection ---

@app.get("/sets/check/{entry_id}")
def check_set(entry_id: str, client=Depends(get_client)) -> Dict:
    return _raise_upstream(_pipeline(client).check_entry(entry_id).to_dict())


@app.get("/sets/find-all")
def find_all_sets(client=Depends(get_client)) -> Dict:
    try:
        entries = _pipeline(client).find_all_unprocessed_sets()
    except SetSplitterError as e:
        raise HTTPException(502, str(e))
    return {
        "success": True,
        "count": len(entries),
        "sets": [
            {"id": e.id, "title": e.title, "price": str(e.first_price) if e.first_price is not None else None}
            for e in entries
        ],
    }


@app.get("/sets/bundle-config/{entry_id}")
def bundle_config(entry_id: str, client=Depends(get_client)) -> Dict:
    result = _raise_upstream(_pipeline(client).get_bundle_config(entry_id).to_dict())
    if not result["success"]:
        raise HTTPException(404, result.get("error") or "bundle configuration not found")
    return result


@app.get("/sets/size-mapping/{entry_id}/{size}")
def size_mapping(entry_id: str, size: str, client=Depends(get_client)) -> Dict:
    result = _raise_upstream(_pipeline(client).size_mapping(entry_id, size).to_dict())
    if not result["success"]:
        raise HTTPException(404, result.get("error") or "size not found")
    return result


@app.post("/sets/refresh-mapping/{entry_id}")
def refresh_mapping(entry_id: str, client=Depends(get_client)) -> Dict:
    return _raise_upstream(_pipeline(client).refresh_variant_mapping(entry_id).to_dict())


@app.post("/sets/reconcile/{entry_id}")
def reconcile(entry_id: str, client=Depends(get_client)) -> Dict:
    return _raise_upstream(_pipeline(client).reconcile_incomplete(entry_id).to_dict())


# --- Component visibility ---

class ComponentIds(BaseModel):
    product_ids: List[str]


@app.post("/components/hide")
def hide(req: ComponentIds, client=Depends(get_client)) -> Dict:
    return hide_components(client, req.product_ids)


@app.post("/components/show")
def show(req: ComponentIds, client=Depends(get_client)) -> Dict:
    return show_components(client, req.product_ids)


@app.get("/components/visibility/{entry_id}")
def visibility(entry_id: str, client=Depends(get_client)) -> Dict:
    s = app_settings.get_settings()
    return visibility_status(client, entry_id, PipelineConfig.from_settings(s).namespace)


# --- Background jobs ---

class ProcessRequest(BaseModel):
    dry_run: bool = False


class ProcessAllRequest(BaseModel):
    delay: Optional[float] = None


def _new_job(kind: str, params: Dict, entry_id: Optional[str] = None) -> Job:
    job = Job(
        id=uuid.uuid4().hex,
        kind=kind,
        status=JobStatus.queued,
        entry_id=entry_id,
        created_at=_now(),
        params=params,
    )
    JOBS[job.id] = job
    _save(job)
    return job


def _finish(j: Job, result: Dict) -> None:
    j.result = result
    if result.get("success"):
        j.status = JobStatus.succeeded
    elif result.get("reason") in SKIP_REASONS:
        j.status = JobStatus.skipped
        j.error = result.get("error")
    else:
        j.status = JobStatus.failed
        j.error = result.get("error")


@app.post("/jobs/process/{entry_id}", response_model=Job)
def create_process_job(entry_id: str, bg: BackgroundTasks, req: Optional[ProcessRequest] = None,
                       client=Depends(get_client)):
    req = req or ProcessRequest()
    job = _new_job("process", req.model_dump(), entry_id)

    def run():
        j = JOBS[job.id]
        j.status = JobStatus.running
        j.started_at = _now()
        _save(j)
        try:
            _finish(j, _pipeline(client).process_entry(entry_id, dry_run=req.dry_run or None).to_dict())
        except Exception as e:
            log.exception(f"Job {j.id} crashed")
            j.status = JobStatus.failed
            j.error = str(e)
        finally:
            j.finished_at = _now()
            _save(j)

    bg.add_task(run)
    return job


@app.post("/jobs/process-all", response_model=Job)
def create_process_all_job(bg: BackgroundTasks, req: Optional[ProcessAllRequest] = None,
                           client=Depends(get_client)):
    req = req or ProcessAllRequest()
    job = _new_job("process-all", req.model_dump())

    def run():
        j = JOBS[job.id]
        j.status = JobStatus.running
        j.started_at = _now()
        _save(j)
        try:
            result = _pipeline(client).process_all_sets(req.delay).to_dict()
            _finish(j, result)
            data = result.get("data") or {}
            j.counters = {"processed": data.get("processedCount", 0), "failed": data.get("failedCount", 0)}
        except Exception as e:
            log.exception(f"Job {j.id} crashed")
            j.status = JobStatus.failed
            j.error = str(e)
        finally:
            j.finished_at = _now()
            _save(j)

    bg.add_task(run)
    return job


@app.get("/jobs/{job_id}", response_model=Job)
def get_job(job_id: str) -> Job:
    if job_id in JOBS:
        return JOBS[job_id]
    j = db.get_job(job_id)
    if j:
        return Job(**j)
    raise HTTPException(404, "job not found")


@app.get("/jobs", response_model=List[Job])
def list_jobs(entry_id: Optional[str] = None) -> List[Job]:
    return [Job(**j) for j in db.list_jobs(entry_id)]


# --- Settings ---

class SettingsUpdate(BaseModel):
    shopify_store: Optional[str] = None
    shopify_api_version: Optional[str] = None
    shopify_access_token: Optional[str] = None
    max_component_price: Optional[str] = None
    create_delay: Optional[float] = None
    process_all_delay: Optional[float] = None
    compare_at_multiplier: Optional[str] = None
    rollback_on_failure: Optional[bool] = None
    namespace: Optional[str] = None
    dry_run: Optional[bool] = None


def _public_settings(s: Dict) -> Dict:
    out = dict(s)
    if out.get("shopify_access_token"):
        out["shopify_access_token"] = "***"
    return out


@app.get("/settings")
def get_settings() -> Dict:
    return _public_settings(app_settings.get_settings())


@app.post("/settings")
def post_settings(req: SettingsUpdate) -> Dict:
    cur = app_settings.get_settings()
    updates = {k: v for k, v in req.model_dump().items() if v is not None}
    for key in ("shopify_store", "shopify_api_version", "shopify_access_token", "namespace"):
        if key in updates:
            updates[key] = str(updates[key]).strip()
    cur.update(updates)
    app_settings.save_settings(cur)
    return _public_settings(cur)


@app.post("/settings/test")
def test_shopify(client=Depends(get_client)) -> Dict:
    """Ping Shopify with current settings and return identity confirmation."""
    res = client.get_shop()
    if not res.success:
        return {"ok": False, "error": res.error}
    shop = res.data or {}
    return {"ok": True, "shop": {"name": shop.get("name"), "domain": shop.get("myshopify_domain") or shop.get("domain")}}


# --- Minimal HTML UI ---

def _layout(body: str) -> str:
    return f"""
<!doctype html>
<html>
  <head>
    <meta charset='utf-8'/>
    <meta name='viewport' content='width=device-width, initial-scale=1'/>
    <title>Set Splitter</title>
    <style>
      body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;max-width:960px;margin:24px auto;padding:0 16px;}}
      h1,h2{{margin:12px 0}}
      table{{border-collapse:collapse;width:100%;}}
      th,td{{border:1px solid #eee;padding:6px;text-align:left}}
      pre{{background:#f7f7f7;padding:12px;overflow:auto}}
      .muted{{color:#666;font-size:90%}}
      .ok{{color:#167d2f}}
      .err{{color:#b10000}}
    </style>
  </head>
  <body>
    <h1>Set Splitter</h1>
    {body}
  </body>
 </html>
"""


def _status_class(status: str) -> str:
    if status == JobStatus.succeeded:
        return "ok"
    if status == JobStatus.failed:
        return "err"
    return "muted"


@app.get("/ui", response_class=HTMLResponse)
def ui_jobs():
    rows = "".join(
        f"<tr><td><a href='/ui/jobs/{j['id']}'>{j['id'][:8]}</a></td><td>{html.escape(j['kind'])}</td>"
        f"<td>{html.escape(j.get('entry_id') or '')}</td>"
        f"<td class='{_status_class(j['status'])}'>{j['status']}</td>"
        f"<td class='muted'>{j['created_at']}</td></tr>"
        for j in db.list_jobs()[:50]
    )
    body = f"""
    <h2>Recent runs</h2>
    <table>
      <tr><th>Job</th><th>Kind</th><th>Entry</th><th>Status</th><th>Created</th></tr>
      {rows or "<tr><td colspan='5' class='muted'>No runs yet</td></tr>"}
    </table>
    """
    return _layout(body)


@app.get("/ui/jobs/{job_id}", response_class=HTMLResponse)
def ui_job_detail(job_id: str):
    j = JOBS[job_id].model_dump() if job_id in JOBS else db.get_job(job_id)
    if not j:
        raise HTTPException(404, "job not found")
    error = f"<p class='err'>{html.escape(j['error'])}</p>" if j.get("error") else ""
    body = f"""
    <p><a href='/ui'>&larr; runs</a></p>
    <h2>Job {j['id'][:8]} <span class='{_status_class(j['status'])}'>{j['status']}</span></h2>
    <p class='muted'>{html.escape(j['kind'])} {html.escape(str(j.get('entry_id') or ''))}</p>
    {error}
    <pre>{html.escape(json.dumps(j.get('result') or {}, indent=2, default=str))}</pre>
    """
    return _layout(body)
