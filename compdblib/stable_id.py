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
"""Deterministic, GUID-shaped identifiers compatible with the IDE's CMake workspace hash.

The IDE exposes ${workspaceHash} and ${projectHash} to CMakeSettings.json build
roots. Both are derived from the path of the root CMakeLists.txt. The value must
match the IDE's own derivation bit for bit, otherwise a configured build root
such as "${env.LOCALAPPDATA}/CMakeBuild/${workspaceHash}/build/${name}" points
at a directory the IDE never created.
"""

import uuid
import hashlib

__all__ = ["stable_id", "stable_id_string"]

GUID_BYTE_COUNT = 16


def stable_id(value: str) -> uuid.UUID:
    """Derive a stable identifier from a string.

    SHA-256 of the UTF-8 bytes, truncated to 16 bytes. Byte 7 gets version
    nibble 0100 and byte 8 gets variant bits 10. The bytes follow the .NET
    Guid(byte[]) layout, where the first three groups are little-endian.

    Args:
        value: Input string (typically an absolute CMakeLists.txt path)

    Returns:
        UUID whose string form matches the external tool's output
    """
    digest = bytearray(hashlib.sha256(value.encode("utf-8")).digest()[:GUID_BYTE_COUNT])

    digest[7] = (digest[7] & 0x0F) | 0x40
    digest[8] = (digest[8] & 0x3F) | 0x80

    return uuid.UUID(bytes_le=bytes(digest))


def stable_id_string(value: str) -> str:
    """Format stable_id(value) as a lower-case dashed hex string."""
    return str(stable_id(value))
