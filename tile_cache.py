"""
Tile download and on-disk tile cache for the static OSM map renderer.

TileDownloader fetches a single tile from one of the sharded OSM mirrors with
a bounded number of attempts and never raises. TileCache maps tile
coordinates to files under the cache directory, re-downloads stale or
missing tiles, and always hands back an image: the cached tile, or a blank
placeholder when the tile cannot be obtained or decoded.
"""

import logging
import os
import random
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Tuple

import requests
from PIL import Image

from constants import COLORS, TILE_SIZE
from map_models import CacheEntry, MapProviderConfig, TileCoordinate

logger = logging.getLogger(__name__)


# Per-tile locks shared by every TileCache in the process, keyed by
# (cache_dir, zoom, x, y). Guards the stale-check/download/write step so two
# renders needing the same missing tile fetch it once. An entry lives only
# while some thread holds or waits for it.
_tile_locks: Dict[Tuple[str, int, int, int], "_TileLock"] = {}
_tile_locks_guard = threading.Lock()


class _TileLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


@contextmanager
def _locked(cache_dir: Path, tile: TileCoordinate) -> Iterator[None]:
    """Hold the process-wide lock for one tile file."""
    key = (str(cache_dir), tile.zoom, tile.x, tile.y)
    with _tile_locks_guard:
        entry = _tile_locks.get(key)
        if entry is None:
            entry = _tile_locks[key] = _TileLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _tile_locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del _tile_locks[key]


def placeholder_tile() -> Image.Image:
    """Blank uniform tile substituted when a real tile is unavailable."""
    return Image.new("RGBA", (TILE_SIZE, TILE_SIZE), COLORS.PLACEHOLDER)


class TileDownloader:
    """Downloads tiles from the OSM tile servers.

    Args:
        config: Provider configuration (URL template, shards, retries, headers)
        random_source: Random generator used to pick a mirror per attempt.
            Pass a seeded ``random.Random`` for deterministic shard selection.
        session: requests session to reuse (one is created if omitted)
        sleep: Sleep function used between attempts when a retry delay is set
    """

    def __init__(self, config: MapProviderConfig, random_source: Optional[random.Random] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self._random = random_source if random_source is not None else random.Random()
        self._session = session if session is not None else requests.Session()
        self._headers = {"User-Agent": config.user_agent}
        self._sleep = sleep

    def build_url(self, tile: TileCoordinate, shard: str) -> str:
        return self.config.tile_url_template.format(shard=shard, zoom=tile.zoom, x=tile.x, y=tile.y)

    def _pick_shard(self) -> str:
        subdomains = self.config.subdomains
        return subdomains[self._random.randrange(len(subdomains))]

    def download(self, tile: TileCoordinate, dest: Path) -> bool:
        """Download ``tile`` to ``dest``, retrying while the file does not exist.

        Every failed attempt (connection error, timeout, non-2xx status, local
        write error) is logged and swallowed.

        Returns:
            True if ``dest`` exists afterwards
        """
        attempts = 0
        while not dest.exists() and attempts < self.config.max_retries:
            if attempts and self.config.retry_delay_seconds > 0:
                self._sleep(self.config.retry_delay_seconds)
            attempts += 1

            url = self.build_url(tile, self._pick_shard())
            logger.debug(f"Downloading tile {url} (attempt {attempts}/{self.config.max_retries})")
            try:
                resp = self._session.get(url, headers=self._headers,
                                         timeout=self.config.request_timeout_seconds)
                resp.raise_for_status()
                self._write_atomic(dest, resp.content)
            except (requests.RequestException, OSError) as e:
                logger.debug(f"Tile download failed for {url}: {e}")

        if not dest.exists():
            logger.warning(f"Giving up on tile {tile.zoom}/{tile.x}/{tile.y} after {attempts} attempts")
            return False
        return True

    @staticmethod
    def _write_atomic(dest: Path, content: bytes) -> None:
        """Write to a temporary sibling file, then move it into place."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=dest.parent, prefix=dest.stem, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_path, dest)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


@dataclass
class TileStats:
    """Counters for one TileCache."""
    cached: int = 0
    downloaded: int = 0
    placeholders: int = 0


class TileCache:
    """File-backed tile cache: ``{cache_dir}/{zoom}_{x}_{y}.png``.

    Args:
        config: Provider configuration (cache directory, freshness threshold)
        downloader: Used on a cache miss (a default TileDownloader is built)
        clock: Returns "now" for freshness checks
    """

    def __init__(self, config: MapProviderConfig, downloader: Optional[TileDownloader] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = config
        self.cache_dir = Path(config.cache_dir)
        self.downloader = downloader if downloader is not None else TileDownloader(config)
        self._clock = clock
        self.stats = TileStats()
        self._stats_lock = threading.Lock()

    def path_for(self, tile: TileCoordinate) -> Path:
        return self.cache_dir / tile.filename

    def entry(self, tile: TileCoordinate) -> Optional[CacheEntry]:
        """Cache entry for ``tile``, or None if the file is absent."""
        return CacheEntry.from_path(self.path_for(tile))

    def is_stale(self, tile: TileCoordinate) -> bool:
        """Missing files and files older than ``max_tile_age`` are stale."""
        entry = self.entry(tile)
        return entry is None or not entry.is_fresh(self.config.max_tile_age, self._clock())

    def get_tile(self, tile: TileCoordinate) -> Image.Image:
        """Return the tile image, downloading it first if stale or missing.

        Never raises for network or file problems; falls back to a blank
        placeholder tile instead.
        """
        path = self.path_for(tile)
        with _locked(self.cache_dir, tile):
            if self.is_stale(tile):
                self._discard(path)
                if self.downloader.download(tile, path):
                    self._count("downloaded")
            else:
                logger.debug(f"Using cached tile {path}")
                self._count("cached")

        img = self._load(path)
        if img is None:
            self._count("placeholders")
            return placeholder_tile()
        return img

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Could not remove stale tile {path}: {e}")

    @staticmethod
    def _load(path: Path) -> Optional[Image.Image]:
        """Decode a tile file, or None if it is missing, corrupt or unreadable."""
        try:
            with Image.open(path) as img:
                tile = img.convert("RGBA")
        except (OSError, ValueError) as e:
            logger.debug(f"Could not load tile {path}: {e}")
            return None
        if tile.size != (TILE_SIZE, TILE_SIZE):
            tile = tile.resize((TILE_SIZE, TILE_SIZE), Image.Resampling.LANCZOS)
        return tile

    def _count(self, field: str) -> None:
        with self._stats_lock:
            setattr(self.stats, field, getattr(self.stats, field) + 1)
