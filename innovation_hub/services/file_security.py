"""Validation and private storage of uploaded files.

Every file goes through the same gate before it touches the disk: size limit
for its category, forbidden extensions, MIME allow-list, file name sanity,
a header check for formats that carry a signature, and (when enabled) a
scan for script payloads. Accepted files are written under ``STORAGE_DIR``
with a generated name; the caller gets back the metadata to persist.
"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import hashlib
import logging
import mimetypes
import secrets
import string

import aiofiles
from fastapi import UploadFile

from innovation_hub.config import ENABLE_VIRUS_SCAN, STORAGE_DIR
from innovation_hub.models import utcnow

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "documents": [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/csv",
    ],
    "images": [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
    ],
    "archives": [
        "application/zip",
        "application/x-rar-compressed",
        "application/vnd.rar",
        "application/x-7z-compressed",
        "application/gzip",
    ],
    "videos": [
        "video/mp4",
        "video/avi",
        "video/quicktime",
        "video/x-msvideo",
    ],
}

# Extensions accepted on challenge submissions, with the type we trust for each.
EXTENSION_MIME_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "txt": "text/plain",
    "csv": "text/csv",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "zip": "application/zip",
    "rar": "application/vnd.rar",
    "mp4": "video/mp4",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
}

FORBIDDEN_EXTENSIONS = {
    "exe", "bat", "com", "scr", "pif", "cmd", "vbs", "js", "jar",
    "php", "asp", "aspx", "jsp", "pl", "py", "rb", "sh", "ps1",
    "msi", "deb", "rpm", "dmg", "app", "pkg",
}

MAX_FILE_SIZES = {
    "documents": 10 * 1024 * 1024,
    "images": 5 * 1024 * 1024,
    "archives": 50 * 1024 * 1024,
    "videos": 100 * 1024 * 1024,
    "default": 10 * 1024 * 1024,
}

DANGEROUS_NAME_PARTS = ["..", "/", "\\", "<", ">", ":", '"', "|", "?", "*", "\0"]

SUSPICIOUS_PATTERNS = [
    b"eval(", b"exec(", b"system(", b"shell_exec(", b"passthru(",
    b"base64_decode(", b"str_rot13(", b"gzinflate(", b"gzuncompress(",
]

_RANDOM_ALPHABET = string.ascii_letters + string.digits


@dataclass
class FileCheck:
    valid: bool = False
    errors: List[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


@dataclass
class UploadResult:
    success: bool
    errors: List[str] = field(default_factory=list)
    path: Optional[str] = None
    metadata: Optional[dict] = None


def format_bytes(size: int) -> str:
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{round(value, 2):g} {unit}"
        value /= 1024
    return f"{size} B"


def file_extension(filename: str) -> str:
    return Path(filename or "").suffix.lstrip(".").lower()


def detect_mime_type(filename: str, claimed: Optional[str] = None) -> str:
    """Type derived from the extension; the client claim is only a last resort."""
    ext = file_extension(filename)
    if ext in EXTENSION_MIME_TYPES:
        return EXTENSION_MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or claimed or "application/octet-stream"


class FileSecurityService:
    def __init__(self, storage_dir: Path = STORAGE_DIR, enable_virus_scan: bool = ENABLE_VIRUS_SCAN):
        self.storage_dir = Path(storage_dir)
        self.enable_virus_scan = enable_virus_scan

    # --- limits exposed to forms ---

    def allowed_mime_types(self) -> List[str]:
        seen = []
        for types in ALLOWED_MIME_TYPES.values():
            seen.extend(t for t in types if t not in seen)
        return seen

    def allowed_extensions(self) -> List[str]:
        return list(EXTENSION_MIME_TYPES)

    def max_file_size(self, category: str = "default") -> int:
        return MAX_FILE_SIZES.get(category, MAX_FILE_SIZES["default"])

    # --- checks ---

    def detect_mime_type(self, filename: str, claimed: Optional[str] = None) -> str:
        return detect_mime_type(filename, claimed)

    def detect_category(self, mime_type: str) -> str:
        for category, types in ALLOWED_MIME_TYPES.items():
            if mime_type in types:
                return category
        return "default"

    def is_allowed_mime_type(self, mime_type: str) -> bool:
        return any(mime_type in types for types in ALLOWED_MIME_TYPES.values())

    def is_valid_filename(self, filename: str) -> bool:
        if any(part in filename for part in DANGEROUS_NAME_PARTS):
            return False
        return 0 < len(filename.encode("utf-8", errors="surrogatepass")) <= 255

    def validate_content(self, mime_type: str, data: bytes) -> List[str]:
        header = data[:1024]
        if mime_type == "application/pdf" and not header.startswith(b"%PDF-"):
            return ["File claims to be PDF but content validation failed"]
        if mime_type == "image/jpeg" and not header.startswith(b"\xff\xd8\xff"):
            return ["File claims to be JPEG but content validation failed"]
        if mime_type == "image/png" and not header.startswith(b"\x89PNG\r\n\x1a\n"):
            return ["File claims to be PNG but content validation failed"]
        if mime_type == "application/zip" and not (header.startswith(b"PK\x03\x04") or header.startswith(b"PK\x05\x06")):
            return ["File claims to be ZIP but content validation failed"]
        return []

    def scan_for_viruses(self, data: bytes) -> Optional[str]:
        if len(data) > 100 * 1024 * 1024:
            return "File size exceeds security threshold"
        head = data[:4096].lower()
        if any(pattern in head for pattern in SUSPICIOUS_PATTERNS):
            return "Suspicious code patterns detected"
        return None

    def validate_file(self, filename: str, data: bytes, claimed_type: Optional[str] = None,
                      context: str = "general") -> FileCheck:
        result = FileCheck()
        size = len(data)
        mime_type = self.detect_mime_type(filename, claimed_type)
        category = self.detect_category(mime_type)
        max_size = self.max_file_size(category)

        if size > max_size:
            result.errors.append(f"File size exceeds maximum allowed size of {format_bytes(max_size)}")
            self._log_event("size_exceeded", filename, size, mime_type, context)
            return result

        ext = file_extension(filename)
        if ext in FORBIDDEN_EXTENSIONS:
            result.errors.append(f"File type '{ext}' is not allowed for security reasons")
            self._log_event("type_rejected", filename, size, mime_type, context)
            return result

        if not self.is_allowed_mime_type(mime_type):
            result.errors.append(f"File type '{mime_type}' is not allowed")
            self._log_event("type_rejected", filename, size, mime_type, context)
            return result

        if not self.is_valid_filename(filename):
            result.errors.append("File name contains invalid characters")
            return result

        content_errors = self.validate_content(mime_type, data)
        if content_errors:
            result.errors.extend(content_errors)
            self._log_event("content_mismatch", filename, size, mime_type, context)
            return result

        if self.enable_virus_scan:
            reason = self.scan_for_viruses(data)
            if reason:
                result.errors.append("File failed security scan")
                self._log_event("virus_detected", filename, size, mime_type, context, reason=reason)
                return result

        result.valid = True
        result.metadata = {
            "original_name": filename,
            "size": size,
            "mime_type": mime_type,
            "extension": ext,
            "category": category,
            "hash": hashlib.sha256(data).hexdigest(),
        }
        return result

    # --- storage ---

    def secure_filename(self, filename: str, uploader_id: Optional[int] = None,
                        now: Optional[datetime] = None) -> str:
        stamp = (now or utcnow()).strftime("%Y-%m-%d_%H-%M-%S")
        token = "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(16))
        owner = uploader_id if uploader_id is not None else "anonymous"
        return f"{stamp}_{owner}_{token}.{file_extension(filename)}"

    async def store_file(self, upload: UploadFile, directory: str, context: str = "general",
                         uploader_id: Optional[int] = None) -> UploadResult:
        filename = upload.filename or ""
        data = await upload.read()
        await upload.seek(0)

        check = self.validate_file(filename, data, upload.content_type, context)
        if not check.valid:
            return UploadResult(success=False, errors=check.errors)

        stored_name = self.secure_filename(filename, uploader_id)
        relative = f"{directory.strip('/')}/{stored_name}"
        target = self.storage_dir / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("File storage error for %s (%s): %s", filename, context, e)
            return UploadResult(success=False, errors=[f"File storage failed: {e}"])

        metadata = dict(check.metadata)
        metadata.update({
            "stored_filename": stored_name,
            "path": relative,
            "upload_timestamp": utcnow().isoformat(),
            "uploader_id": uploader_id,
            "context": context,
        })
        self._log_event("file_uploaded", filename, metadata["size"], metadata["mime_type"], context, path=relative)
        return UploadResult(success=True, path=relative, metadata=metadata)

    def resolve(self, path: str) -> Optional[Path]:
        """Absolute location of a stored file, or None if ``path`` points outside storage."""
        root = self.storage_dir.resolve()
        target = (root / path).resolve()
        if root not in target.parents:
            return None
        return target

    def delete_file(self, path: str) -> bool:
        target = self.storage_dir / path
        if not target.is_file():
            return False
        target.unlink()
        logger.info("Deleted stored file %s", path)
        return True

    def _log_event(self, event: str, filename: str, size: int, mime_type: str, context: str, **extra):
        logger.info(
            "File security event=%s file=%s size=%s mime=%s context=%s %s",
            event, filename, size, mime_type, context,
            " ".join(f"{k}={v}" for k, v in extra.items()),
        )


file_security = FileSecurityService()
