# slowpost/services/storage/local_store.py
"""
Local storage: one JSON array file plus an uploads directory

Every write reads the whole file, changes the list and rewrites the whole
file through a temp file + os.replace. Writes inside this process are
serialized; separate processes writing the same file are last-writer-wins.
"""

import asyncio
import json
import os
import tempfile
from typing import Any, Dict, List, Optional

from slowpost.config import Settings
from slowpost.exceptions import StorageError
from slowpost.schemas.letter_schemas import Letter
from slowpost.services.storage.base import MediaUpload, StorageBackend, StoredAssets, asset_name
from slowpost.utils.logger import logger
from slowpost.utils.reveal import delay_days

UPLOADS_URL_PREFIX = "/uploads"


class LocalStorage(StorageBackend):
    name = "local"

    def __init__(self, settings: Settings):
        self.data_dir = os.path.abspath(settings.data_dir)
        self.letters_file = os.path.join(self.data_dir, settings.letters_file_name)
        self.uploads_dir = os.path.join(self.data_dir, settings.uploads_dir_name)
        self._write_lock = asyncio.Lock()

    async def prepare(self) -> None:
        os.makedirs(self.uploads_dir, exist_ok=True)
        if not os.path.exists(self.letters_file):
            self._write_documents([])
        logger.info(f" Local store ready: {self.letters_file}")

    # ---- JSON file ----

    def _read_documents(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.letters_file):
            return []
        try:
            with open(self.letters_file, "r", encoding="utf-8") as f:
                documents = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"cannot read {self.letters_file}: {e}") from e
        if not isinstance(documents, list):
            raise StorageError(f"{self.letters_file} does not hold a JSON array")
        return documents

    def _write_documents(self, documents: List[Dict[str, Any]]) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".letters-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(documents, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.letters_file)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(f"cannot write {self.letters_file}: {e}") from e

    def _to_letter(self, doc: Any) -> Optional[Letter]:
        if not isinstance(doc, dict):
            return None
        try:
            return Letter.from_document(doc)
        except ValueError as e:
            logger.warning(f" Skipping unreadable stored letter: {e}")
            return None

    # ---- assets ----

    def _write_asset(self, upload: MediaUpload) -> str:
        filename = asset_name(upload.filename)
        target = os.path.join(self.uploads_dir, filename)
        os.makedirs(self.uploads_dir, exist_ok=True)
        with open(target, "wb") as f:
            f.write(upload.data)
        return filename

    async def store_assets(self, images, videos, audio) -> StoredAssets:
        stored = StoredAssets()
        try:
            for upload in images:
                filename = self._write_asset(upload)
                stored.keys.append(filename)
                stored.image_urls.append(f"{UPLOADS_URL_PREFIX}/{filename}")
            for upload in videos:
                filename = self._write_asset(upload)
                stored.keys.append(filename)
                stored.video_urls.append(f"{UPLOADS_URL_PREFIX}/{filename}")
            if audio is not None:
                filename = self._write_asset(audio)
                stored.keys.append(filename)
                stored.audio_url = f"{UPLOADS_URL_PREFIX}/{filename}"
        except OSError as e:
            await self.discard_assets(stored)
            raise StorageError(f"cannot write upload: {e}") from e
        return stored

    async def discard_assets(self, assets: StoredAssets) -> None:
        for filename in assets.keys:
            try:
                os.remove(os.path.join(self.uploads_dir, filename))
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f" Could not remove upload {filename}: {e}")

    # ---- letters ----

    async def create(self, letter: Letter) -> Letter:
        async with self._write_lock:
            documents = self._read_documents()
            documents.append(letter.to_document())
            self._write_documents(documents)
        return letter

    async def get_all(self) -> List[Letter]:
        letters = []
        for doc in self._read_documents():
            letter = self._to_letter(doc)
            if letter is not None:
                letters.append(letter)
        return letters

    async def get_by_id(self, letter_id: str) -> Optional[Letter]:
        for doc in self._read_documents():
            if isinstance(doc, dict) and doc.get("id") == letter_id:
                return self._to_letter(doc)
        return None

    async def update_pending(self, letter_id, letter_content, delay_minutes) -> Optional[Letter]:
        async with self._write_lock:
            documents = self._read_documents()
            for doc in documents:
                if isinstance(doc, dict) and doc.get("id") == letter_id:
                    doc["letterContent"] = letter_content
                    doc["delayMinutes"] = delay_minutes
                    doc["delayDays"] = delay_days(delay_minutes)
                    self._write_documents(documents)
                    return self._to_letter(doc)
        return None

    async def health(self) -> Dict[str, Any]:
        writable = os.path.isdir(self.data_dir) and os.access(self.data_dir, os.W_OK)
        return {
            "configured": {"dataDir": True},
            "live": {"dataDir": writable, "lettersFile": os.path.exists(self.letters_file)},
        }
