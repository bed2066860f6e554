"""Configuration package utilities."""

__all__ = [
    "PolicyProfile",
    "ProfileError",
    "SettingsError",
    "VerifierSettings",
    "load_profile",
    "load_settings",
]


def __getattr__(name: str):
    if name in {"SettingsError", "VerifierSettings", "load_settings"}:
        from config import controller

        return getattr(controller, name)
    if name in {"PolicyProfile", "ProfileError", "load_profile"}:
        from config import profile

        return getattr(profile, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
