#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************************************************************************************************
# * BSD 3-Clause License
# *
# * Copyright (c) 2025, Mana Battery
# * All rights reserved.
# *
# * Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
# *
# * 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
# * 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
# *    documentation and/or other materials provided with the distribution.
# * 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
# *    software without specific prior written permission.
# *
# * THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
# * THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
# * CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
# * PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# * LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# * EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
# ****************************************************************************************************************************************************
"""Persistent file-based caching of toolchain environment snapshots.

Capturing the toolchain environment spawns a shell and runs a slow batch file,
so the command line tool can keep snapshots on disk between invocations. A
snapshot is reused only while the bootstrap script is unchanged and the cache
is younger than the maximum age.
"""

import os
import time
import pickle
import hashlib
import logging
from typing import Dict, Optional
from dataclasses import dataclass

from compdblib.constants import CACHE_DIR, TOOLCHAIN_ENV_CACHE_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class CacheMetadata:
    """Metadata for cache validation.

    Attributes:
        script_params: Bootstrap script parameters the snapshot was captured with
        script_mtime: Modification time of the bootstrap script
        cache_timestamp: Timestamp when cache was created
    """

    script_params: str
    script_mtime: float
    cache_timestamp: float


@dataclass
class CachedSnapshot:
    """Container for a cached snapshot with metadata.

    Attributes:
        metadata: Cache validation metadata
        data: The environment snapshot
    """

    metadata: CacheMetadata
    data: Dict[str, str]


def get_cache_path(cache_root: str, script_params: Optional[str]) -> str:
    """Get the path to the snapshot cache file for a parameter string.

    Args:
        cache_root: Directory that holds the cache directory
        script_params: Bootstrap script parameters (None is treated as "")

    Returns:
        Full path to the cache file
    """
    key = hashlib.sha256((script_params or "").encode("utf-8")).hexdigest()[:16]
    return os.path.join(cache_root, CACHE_DIR, f"{TOOLCHAIN_ENV_CACHE_PREFIX}{key}.pickle")


def ensure_cache_dir(cache_root: str) -> str:
    """Ensure the cache directory exists below cache_root.

    Returns:
        Path to the cache directory
    """
    cache_dir = os.path.join(cache_root, CACHE_DIR)

    if not os.path.exists(cache_dir):
        try:
            os.makedirs(cache_dir, exist_ok=True)
            logger.debug("Created cache directory: %s", cache_dir)
        except OSError as e:
            logger.warning("Failed to create cache directory %s: %s", cache_dir, e)

    return cache_dir


def is_cache_valid(metadata: CacheMetadata, script_params: Optional[str], script_path: str, max_age_hours: Optional[float] = None) -> bool:
    """Check if a cached snapshot is still valid.

    Args:
        metadata: Cache metadata to validate
        script_params: Parameters of the current request
        script_path: Path to the bootstrap script
        max_age_hours: Maximum cache age in hours (None = no age limit)

    Returns:
        True if cache is valid, False otherwise
    """
    if metadata.script_params != (script_params or ""):
        logger.debug("Cache invalid: parameters differ ('%s' != '%s')", metadata.script_params, script_params)
        return False

    if not os.path.exists(script_path):
        logger.debug("Cache invalid: bootstrap script %s does not exist", script_path)
        return False

    if os.path.getmtime(script_path) != metadata.script_mtime:
        logger.debug("Cache invalid: bootstrap script changed")
        return False

    if max_age_hours is not None:
        age_hours = (time.time() - metadata.cache_timestamp) / 3600
        if age_hours > max_age_hours:
            logger.debug("Cache invalid: age %.1fh exceeds limit %sh", age_hours, max_age_hours)
            return False

    return True


def save_snapshot(cache_root: str, script_params: Optional[str], snapshot: Dict[str, str], script_path: str) -> bool:
    """Save a snapshot to the cache with metadata.

    Uses atomic write (temp file + rename) to prevent corruption.

    Returns:
        True if successful, False otherwise
    """
    ensure_cache_dir(cache_root)
    cache_path = get_cache_path(cache_root, script_params)
    temp_path = cache_path + ".tmp"

    try:
        metadata = CacheMetadata(script_params=script_params or "", script_mtime=os.path.getmtime(script_path), cache_timestamp=time.time())

        with open(temp_path, "wb") as f:
            pickle.dump(CachedSnapshot(metadata=metadata, data=dict(snapshot)), f, protocol=pickle.HIGHEST_PROTOCOL)

        os.replace(temp_path, cache_path)

        logger.debug("Saved cache: %s", cache_path)
        return True

    except (OSError, pickle.PicklingError) as e:
        logger.warning("Failed to save cache %s: %s", cache_path, e)
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                pass
        return False


def load_snapshot(cache_root: str, script_params: Optional[str], script_path: str, max_age_hours: Optional[float] = None) -> Optional[Dict[str, str]]:
    """Load a snapshot from the cache if valid.

    Returns:
        Cached snapshot if valid, None otherwise
    """
    cache_path = get_cache_path(cache_root, script_params)
    if not os.path.exists(cache_path):
        logger.debug("Cache miss: %s does not exist", cache_path)
        return None

    try:
        with open(cache_path, "rb") as f:
            cached: CachedSnapshot = pickle.load(f)

        if not is_cache_valid(cached.metadata, script_params, script_path, max_age_hours):
            logger.debug("Cache invalid: %s", cache_path)
            return None

        logger.debug("Cache hit: %s", cache_path)
        return cached.data

    except (OSError, pickle.UnpicklingError, AttributeError, EOFError) as e:
        logger.warning("Failed to load cache %s: %s, capturing again", cache_path, e)
        try:
            os.remove(cache_path)
            logger.debug("Removed corrupted cache: %s", cache_path)
        except OSError:
            pass
        return None


def cleanup_old_caches(cache_root: str, max_age_hours: float) -> int:
    """Remove snapshot cache files older than the specified age.

    Returns:
        Number of cache files removed
    """
    cache_dir = os.path.join(cache_root, CACHE_DIR)

    if not os.path.exists(cache_dir):
        return 0

    removed_count = 0
    current_time = time.time()
    max_age_seconds = max_age_hours * 3600

    try:
        for filename in os.listdir(cache_dir):
            if not (filename.startswith(TOOLCHAIN_ENV_CACHE_PREFIX) and filename.endswith(".pickle")):
                continue

            filepath = os.path.join(cache_dir, filename)
            try:
                age_seconds = current_time - os.stat(filepath).st_mtime
                if age_seconds > max_age_seconds:
                    os.remove(filepath)
                    removed_count += 1
                    logger.debug("Removed old cache: %s (age: %.1fh)", filepath, age_seconds / 3600)
            except OSError as e:
                logger.warning("Failed to process cache file %s: %s", filepath, e)
                continue

    except OSError as e:
        logger.warning("Failed to list cache directory %s: %s", cache_dir, e)

    if removed_count > 0:
        logger.info("Cleaned up %s old cache file(s)", removed_count)

    return removed_count
