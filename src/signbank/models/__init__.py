from signbank.models.acceleration import AccelerationSample
from signbank.models.clip import Clip, new_clip_id, normalize_label

__all__ = [
    'AccelerationSample',
    'Clip',
    'new_clip_id',
    'normalize_label',
]
