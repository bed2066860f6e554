"""Stack location, compose access and runtime inspection."""

from runtime.compose import ComposeStack, Lookup, StackLocation

__all__ = ["ComposeStack", "Lookup", "StackLocation"]
