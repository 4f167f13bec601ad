"""JAX configuration for physics modules: 64-bit precision and platform selection."""

import os
from typing import Optional

# Platform must be chosen BEFORE importing JAX; default to CPU unless the
# caller already exported JAX_PLATFORMS or asked for another one.
_IBPM_PLATFORM: Optional[str] = os.environ.get("IBPM_JAX_PLATFORM")
if _IBPM_PLATFORM:
    os.environ["JAX_PLATFORMS"] = _IBPM_PLATFORM
else:
    os.environ.setdefault("JAX_PLATFORMS", "cpu")

import jax
import jax.numpy as jnp

jax.config.update("jax_enable_x64", True)


def get_device_info() -> str:
    """Get available JAX devices as string."""
    devices = jax.devices()
    device_strs = [f"{d.platform}:{d.id}" for d in devices]
    return f"JAX devices: {device_strs}"


__all__ = ['jax', 'jnp', 'get_device_info']
