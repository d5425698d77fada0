"""Installer ISO cache: download at most once into the cache directory."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from ..config import ProxmoxVMConfig, artifact_paths
from ..errors import DownloadFailedError
from ..util import CmdError, ensure_dir, run_cmd

log = logger


def image_cached(path: Path) -> bool:
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def fetch_image(cfg: ProxmoxVMConfig, *, dry_run: bool = False) -> Path:
    p = artifact_paths(cfg)
    iso = p['iso']
    tmp_iso = Path(str(iso) + '.part')
    url = cfg.image.iso_url
    if image_cached(iso) and not cfg.image.redownload:
        log.info('Installer ISO already cached: {}', iso)
        return iso
    if dry_run:
        log.info(
            'DRYRUN: curl -L --fail -o {} {}; mv {} {}', tmp_iso, url, tmp_iso, iso
        )
        return iso
    ensure_dir(p['cache_dir'])
    tmp_iso.unlink(missing_ok=True)
    log.info('Downloading installer ISO to {} (showing progress)', iso)
    try:
        run_cmd(
            ['curl', '-L', '--fail', '--progress-bar', '-o', str(tmp_iso), url],
            check=True,
            capture=False,
        )
    except CmdError as ex:
        tmp_iso.unlink(missing_ok=True)
        raise DownloadFailedError(
            f'Download failed (code={ex.result.code}): {url}'
        ) from ex
    tmp_iso.replace(iso)
    log.info('ISO downloaded: {}', iso)
    return iso
