import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Union

from knxbridge.utils.address import format_group

from .base import BusErrorKind, BusSession, BusSessionError

logger = logging.getLogger("knxbridge.transports.replay")


def read_capture(path: Union[str, Path]) -> List[bytes]:
    """Read a text capture: one hex-encoded frame per line, '#' comments."""
    frames: List[bytes] = []
    for lineno, line in enumerate(Path(path).read_text(encoding="utf-8").splitlines(), start=1):
        text = line.split("#", 1)[0].strip()
        if not text:
            continue
        try:
            frames.append(bytes.fromhex(text))
        except ValueError:
            raise ValueError(f"{path}:{lineno}: invalid hex frame '{text}'")
    return frames


class ReplayBusSession(BusSession):
    """Bus session that plays back a recorded monitor capture.

    Frames are delivered in file order, ``interval`` seconds apart. When the
    capture is exhausted the session reports SERVER_ABORTED, as a
    multiplexer closing the connection would. Writes are only logged.
    """

    def __init__(self, path: Union[str, Path], interval: float = 0.0):
        self.path = Path(path)
        self.interval = interval
        self.connected = False
        self._frames: Optional[List[bytes]] = None
        self._position = 0

    @property
    def host(self) -> str:
        return f"replay:{self.path}"

    async def open(self):
        if self.connected:
            return
        if self._frames is None:
            try:
                self._frames = read_capture(self.path)
            except OSError as exc:
                raise BusSessionError(BusErrorKind.NO_CONNECTION, f"cannot open capture: {exc}")
        self.connected = True

    async def close(self):
        self.connected = False

    async def authenticate(self, user: str, password: str):
        logger.debug("Replay session ignores credentials for %s", user)

    async def monitor(self) -> bytes:
        if not self.connected or self._frames is None:
            raise BusSessionError(BusErrorKind.NO_CONNECTION, "capture not open")
        if self._position >= len(self._frames):
            raise BusSessionError(BusErrorKind.SERVER_ABORTED, "end of capture reached")
        if self.interval:
            await asyncio.sleep(self.interval)
        frame = self._frames[self._position]
        self._position += 1
        return frame

    async def write(self, address: int, length: int, data: bytes):
        logger.info(
            "Replay write to %s (%d bytes): %s",
            format_group(address),
            length,
            bytes(data).hex(" "),
        )
