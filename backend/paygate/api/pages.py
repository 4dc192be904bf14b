"""Payment callback page and static frontend routes"""
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, HTMLResponse

from paygate.core.config import settings

router = APIRouter(tags=["pages"])

CALLBACK_PAGE = """<!doctype html>
<html><head><meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1">
<title>Payment callback</title>
<style>
  body{margin:0;background:linear-gradient(180deg,#0b0c10 0%,#0f1118 100%);color:#e9edf5;
       font-family:Inter,system-ui,Segoe UI,Roboto,Arial,sans-serif;display:flex;align-items:center;justify-content:center;height:100vh}
  .card{background:#141720;border:1px solid #232635;border-radius:16px;padding:28px;max-width:520px;text-align:center}
  .btn{display:inline-block;margin-top:14px;background:#5b8cff;color:#fff;border:none;border-radius:12px;padding:12px 16px;font-weight:700;text-decoration:none}
  .muted{color:#9aa3b2}
</style></head>
<body>
  <div class="card">
    <h2>Payment received</h2>
    <p class="muted">Thanks! If this was successful, your subscription will activate shortly.</p>
    <a class="btn" href="/chat.html">Go to Chat</a>
    <p class="muted" style="margin-top:10px">If your access hasn't updated yet, refresh in a few seconds. Activation is handled by the webhook.</p>
  </div>
</body></html>"""


@router.get("/payment/callback", response_class=HTMLResponse)
def payment_callback():
    """Landing page after Paystack checkout; the webhook remains the source of truth"""
    return HTMLResponse(CALLBACK_PAGE)


@router.get("/healthz")
def healthz():
    return {"ok": True}


def resolve_static_file(static_dir: Path, requested: str):
    """Map a request path to a file under static_dir, or None.

    Paths that escape static_dir (e.g. via '..') never resolve.
    """
    root = static_dir.resolve()
    candidate = (root / requested.lstrip("/")).resolve()
    if not candidate.is_relative_to(root):
        return None
    return candidate if candidate.is_file() else None


@router.get("/{full_path:path}", include_in_schema=False)
def frontend(full_path: str):
    """Serve the static frontend, falling back to index.html for unknown routes"""
    if full_path.startswith("api/"):
        raise HTTPException(404, "Not found")

    static_file = resolve_static_file(settings.STATIC_DIR, full_path)
    if static_file:
        return FileResponse(static_file)

    index = resolve_static_file(settings.STATIC_DIR, "index.html")
    if index:
        return FileResponse(index)

    raise HTTPException(404, "Not found")
