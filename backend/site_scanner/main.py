from collections import OrderedDict
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from site_scanner.core.config import Settings
from site_scanner.core.engine import ScannerRuntime
from site_scanner.models.schemas import ScanRequest


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with ScannerRuntime.open(Settings()) as runtime:
        app.state.runtime = runtime
        yield


app = FastAPI(title="Site Scanner API", version="0.4.0", lifespan=lifespan)

origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# scan_id -> result record, oldest evicted first; a repeated scan id
# replaces the earlier pair
MAX_RESULTS = 1000
_RESULTS: "OrderedDict[str, dict]" = OrderedDict()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/scan")
async def start_scan(req: ScanRequest):
    result = await app.state.runtime.orchestrator.scan(req)
    record = result.to_record()
    _RESULTS.pop(req.scan_id, None)
    _RESULTS[req.scan_id] = record
    while len(_RESULTS) > MAX_RESULTS:
        _RESULTS.popitem(last=False)
    return record


@app.get("/scan/{scan_id}")
async def get_scan(scan_id: str):
    if scan_id not in _RESULTS:
        raise HTTPException(status_code=404, detail="Unknown scan_id")
    return _RESULTS[scan_id]
