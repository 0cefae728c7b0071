from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = os.getenv("APP_NAME", "Event Check-in")
DOCUMENTS_PATH = Path(os.path.expanduser("~")) / "Documents"
DEFAULT_POINTER_DIR = Path(os.getenv("CHECKIN_APP_HOME", str(DOCUMENTS_PATH / DEFAULT_APP_NAME))).expanduser()
DEFAULT_SETTINGS_FILENAME = "user_settings.json"

DEFAULT_SETTINGS: Dict[str, Any] = {
	"coordinator_id": None,
	"last_event_id": None,
	"qr_camera_index": 0,
	"app_data_dir": str(DEFAULT_POINTER_DIR),
}


@dataclass
class UserSettingsStore:
	"""Per-device preferences persisted in a JSON file."""

	pointer_dir: Path = field(default_factory=lambda: DEFAULT_POINTER_DIR)
	settings_filename: str = DEFAULT_SETTINGS_FILENAME
	_data: Dict[str, Any] = field(init=False, default_factory=dict)
	app_data_dir: Path = field(init=False)
	settings_file: Path = field(init=False)

	def __post_init__(self) -> None:
		self.pointer_dir = Path(self.pointer_dir).expanduser()
		self.pointer_dir.mkdir(parents=True, exist_ok=True)
		self.reload()

	# ------------------------------------------------------------------
	# Public API
	# ------------------------------------------------------------------
	def get(self, key: str, default: Any = None) -> Any:
		value = self._data.get(key)
		return default if value is None else value

	def reload(self) -> None:
		pointer_path = self.pointer_dir / self.settings_filename
		pointer_data = self._load_json(pointer_path)

		app_data_raw = pointer_data.get("app_data_dir") or str(self.pointer_dir)
		self.app_data_dir = Path(app_data_raw).expanduser()
		self.app_data_dir.mkdir(parents=True, exist_ok=True)

		self.settings_file = self.app_data_dir / self.settings_filename
		file_data = self._load_json(self.settings_file) if self.settings_file != pointer_path else {}

		combined = dict(DEFAULT_SETTINGS)
		combined.update(pointer_data)
		combined.update(file_data)
		combined["app_data_dir"] = str(self.app_data_dir)
		self._data = combined

	def update(self, **kwargs: Any) -> Dict[str, Any]:
		new_data = dict(self._data)

		if kwargs.get("app_data_dir"):
			new_dir = Path(kwargs.pop("app_data_dir")).expanduser()
			new_dir.mkdir(parents=True, exist_ok=True)
			self.app_data_dir = new_dir
			self.settings_file = new_dir / self.settings_filename
			new_data["app_data_dir"] = str(new_dir)

		for key, value in kwargs.items():
			if key in DEFAULT_SETTINGS:
				new_data[key] = value

		self._data = new_data
		self._persist()
		return dict(self._data)

	# ------------------------------------------------------------------
	# Internal helpers
	# ------------------------------------------------------------------
	def _persist(self) -> None:
		pointer_path = self.pointer_dir / self.settings_filename

		with pointer_path.open("w", encoding="utf-8") as handle:
			json.dump(self._data, handle, indent=2)

		if self.settings_file != pointer_path:
			with self.settings_file.open("w", encoding="utf-8") as handle:
				json.dump(self._data, handle, indent=2)

	@staticmethod
	def _load_json(path: Path) -> Dict[str, Any]:
		if not path.exists():
			return {}
		try:
			with path.open("r", encoding="utf-8") as handle:
				data = json.load(handle)
		except (OSError, ValueError) as exc:
			logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
			return {}
		return data if isinstance(data, dict) else {}
