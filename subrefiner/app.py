import logging
from typing import List, Optional

from fastapi import FastAPI
from pydantic import BaseModel, Field

from .config import settings
from .errors import ValidationError
from .partition import DEFAULT_TAIL_SIZE, build_tail, split_by_family
from .probe import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT, MAX_PROBE_LINES, probe_async
from .schemes import is_valid_line, validate_line

MAX_PROBE_CONCURRENCY = 200
MAX_PROBE_TIMEOUT = 30.0

# 配置日志级别
logging.basicConfig(level=settings.LOG_LEVEL.upper(), format='%(asctime)s - %(levelname)s - %(message)s')

app = FastAPI()


class LinesRequest(BaseModel):
    lines: List[str]


class ProbeRequest(BaseModel):
    lines: List[str]
    timeout: Optional[float] = Field(DEFAULT_TIMEOUT, gt=0, le=MAX_PROBE_TIMEOUT)
    concurrency: Optional[int] = Field(DEFAULT_CONCURRENCY, gt=0, le=MAX_PROBE_CONCURRENCY)


class PartitionRequest(BaseModel):
    lines: List[str]
    n: Optional[int] = DEFAULT_TAIL_SIZE


@app.post("/validate")
async def validate_nodes(request: LinesRequest):
    """逐行校验，返回有效行和无效原因"""
    valid, invalid = [], []
    for raw in request.lines:
        line = raw.strip()
        if not line:
            continue
        try:
            validate_line(line)
        except ValidationError as e:
            invalid.append({"line": line, "reason": str(e)})
            continue
        valid.append(line)
    logging.info(f"Validated {len(request.lines)} lines: {len(valid)} valid, {len(invalid)} invalid")
    return {"valid": valid, "invalid": invalid}


@app.post("/probe")
async def probe_nodes(request: ProbeRequest):
    """只测试结构有效的行，返回可连通的节点"""
    valid = [line.strip() for line in request.lines if is_valid_line(line)]
    reachable = await probe_async(
        valid,
        timeout=request.timeout or DEFAULT_TIMEOUT,
        concurrency=request.concurrency or DEFAULT_CONCURRENCY,
    )
    return {"reachable": sorted(reachable), "tested": min(len(valid), MAX_PROBE_LINES)}


@app.post("/partition")
async def partition_nodes(request: PartitionRequest):
    ipv4, ipv6 = split_by_family(request.lines)
    return {"ipv4": ipv4, "ipv6": ipv6, "lite": build_tail(request.lines, request.n or 0)}


@app.get("/health")
async def health_check():
    """健康检查接口"""
    return {"status": "ok"}
