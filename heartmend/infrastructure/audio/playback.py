"""
Audio playback through an external command-line player.

One ``AudioPlayer`` plays one payload. The process is watched on a daemon
thread which reports the exit through ``on_finished`` unless ``stop()`` was
called first.
"""
import os
import shutil
import logging
import tempfile
import threading
import subprocess
from typing import Callable, List, Optional

from .encoding import extension_for

logger = logging.getLogger("audio_playback")

# Preference order; the first one found on PATH is used
PLAYER_CANDIDATES = ("ffplay", "afplay", "mpg123")


def find_player() -> Optional[str]:
    """Return the first available player executable name, or None."""
    for name in PLAYER_CANDIDATES:
        if shutil.which(name):
            return name
    return None


def build_player_command(player: str, path: str, volume: float, rate: float) -> List[str]:
    """
    Command line for ``player`` honouring volume (0-1) and rate (0.5-2.0).

    mpg123 has no tempo control, so rate is ignored there.
    """
    if player == "ffplay":
        return ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet",
                "-volume", str(int(round(volume * 100))),
                "-af", f"atempo={rate:g}", path]
    if player == "afplay":
        return ["afplay", "-v", f"{volume:g}", "-r", f"{rate:g}", "-q", "1", path]
    if player == "mpg123":
        return ["mpg123", "-q", "-f", str(int(round(volume * 32768))), path]
    raise ValueError(f"Unsupported player: {player}")


class AudioPlayer:
    """Plays a single audio payload in a subprocess."""

    def __init__(self, player: Optional[str] = None):
        self.player = player
        self._process: Optional[subprocess.Popen] = None
        self._path: Optional[str] = None
        self._stopped = False
        self._lock = threading.Lock()

    def start(self,
              audio: bytes,
              mime_type: str,
              volume: float,
              rate: float,
              on_finished: Callable[[int], None]) -> None:
        """
        Begin playback and return immediately.

        Raises:
            RuntimeError: If no player is installed
            OSError: If the player process cannot be started
        """
        player = self.player or find_player()
        if player is None:
            raise RuntimeError(f"No audio player found (tried {', '.join(PLAYER_CANDIDATES)})")

        with tempfile.NamedTemporaryFile(suffix=extension_for(mime_type), delete=False) as tmp_file:
            tmp_file.write(audio)
            self._path = tmp_file.name

        try:
            self._process = subprocess.Popen(
                build_player_command(player, self._path, volume, rate),
                stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
            )
        except OSError:
            self._remove_file()
            raise

        logger.debug("Started %s (pid %d) for %s", player, self._process.pid, self._path)
        watcher = threading.Thread(
            target=self._watch, args=(self._process, on_finished),
            name="heartmend-playback", daemon=True,
        )
        watcher.start()

    def _watch(self, process: subprocess.Popen, on_finished: Callable[[int], None]) -> None:
        returncode = process.wait()
        self._remove_file()
        with self._lock:
            stopped = self._stopped
        if not stopped:
            on_finished(returncode)

    def stop(self) -> None:
        """Terminate playback. No callback fires after this returns."""
        with self._lock:
            self._stopped = True
        process = self._process
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            process.kill()
        logger.debug("Stopped player pid %d", process.pid)

    def _remove_file(self) -> None:
        path, self._path = self._path, None
        if path:
            try:
                os.unlink(path)
            except OSError:
                pass
