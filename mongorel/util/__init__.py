from .settings_dict import ModelSettingsDict
from .marker import ABSENT
from .ids import to_object_id, to_object_ids, entity_key, utcnow, now_in
from .database import Database
from .registry import register_model, resolve_model, find_model
