from .settings import settings
from .feature_flags import FeatureFlags

__all__ = ["settings", "FeatureFlags"]
