"""
Feature Flags

Switches for behaviour that runs outside the request path. Each flag is
read once from the environment at import time; tests flip them with
monkeypatch.
"""
import os

_TRUTHY = ('true', '1', 'yes', 'on', 'enabled')


def get_bool_env(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class FeatureFlags:
    # Fold per-match player stats into career rows as soon as a match ends;
    # when off, the deferred rollup task does it
    FEATURE_CAREER_ROLLUP_ON_MATCH_END: bool = get_bool_env('FEATURE_CAREER_ROLLUP_ON_MATCH_END', True)

    # Challenge expiry sweep + deferred stats rollup loops in the app lifespan
    FEATURE_BACKGROUND_TASKS: bool = get_bool_env('FEATURE_BACKGROUND_TASKS', False)

    @classmethod
    def get_all_flags(cls) -> dict:
        """Flag name -> current value, as reported by /health."""
        return {key: getattr(cls, key) for key in dir(cls) if key.startswith('FEATURE_')}
