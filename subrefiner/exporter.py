"""
导出文件写入

内容为换行拼接后整体做一次标准 base64 编码。先写入同目录下的临时文件，
再替换目标文件；目标被其他进程占用（Windows 常见）时按重试策略等待后重试。
"""

import base64
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .errors import ExportError

logger = logging.getLogger(__name__)

LOCKED_MARKERS = (
    "used by another process",
    "access is denied",
    "sharing violation",
)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 6
    base_delay: float = 0.2

    def backoff(self, attempt: int) -> float:
        """第 attempt 次失败后的等待秒数（线性增长）"""
        return self.base_delay * attempt

    @staticmethod
    def is_transient(err: OSError) -> bool:
        message = str(err).lower()
        return any(marker in message for marker in LOCKED_MARKERS)


DEFAULT_RETRY_POLICY = RetryPolicy()


class FileOps:
    """替换文件时用到的系统调用，测试时可以替换"""
    replace: Callable[[str, str], None] = staticmethod(os.replace)
    remove: Callable[[str], None] = staticmethod(os.remove)
    sleep: Callable[[float], None] = staticmethod(time.sleep)


def encode_lines(lines: Sequence[str]) -> bytes:
    payload = "\n".join(lines)
    return base64.b64encode(payload.encode("utf-8"))


def decode_export(data: bytes) -> List[str]:
    """encode_lines 的逆操作，空内容返回空列表"""
    text = base64.b64decode(data).decode("utf-8")
    return text.split("\n") if text else []


def _discard(path: str, fs: FileOps):
    try:
        fs.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove temp file {path}: {e}")


def commit_file(tmp_path: str, path: str, policy: RetryPolicy = DEFAULT_RETRY_POLICY,
                fs: Optional[FileOps] = None):
    """用 tmp_path 替换 path，目标被占用时重试，最终失败时清理临时文件"""
    fs = fs or FileOps()
    attempts = max(policy.max_attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            fs.replace(tmp_path, path)
            return
        except OSError as e:
            if policy.is_transient(e) and attempt < attempts:
                delay = policy.backoff(attempt)
                logger.warning(f"{path} is locked, retrying in {delay:.1f}s ({attempt}/{attempts}): {e}")
                fs.sleep(delay)
                continue
            _discard(tmp_path, fs)
            raise ExportError(f"rename failed ({attempt} tries): {e}") from e


def export_lines(path: str, lines: Sequence[str], sort: bool = False,
                 policy: RetryPolicy = DEFAULT_RETRY_POLICY, fs: Optional[FileOps] = None):
    """
    把 lines 编码后写入 path

    Args:
        path: 目标文件
        lines: 节点列表，不会被修改
        sort: 是否按字典序排序后写入
        policy: 文件被占用时的重试策略
        fs: 文件操作，默认使用 os
    """
    fs = fs or FileOps()
    data = encode_lines(sorted(lines) if sort else list(lines))

    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=os.path.basename(path) + ".", suffix=".tmp", dir=directory)
    except OSError as e:
        raise ExportError(f"create temp file in {directory}: {e}") from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        _discard(tmp_path, fs)
        raise ExportError(f"write {tmp_path}: {e}") from e

    commit_file(tmp_path, path, policy, fs)
    logger.info(f"Saved {len(lines)} lines to {path}")
