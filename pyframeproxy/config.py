from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SUPPRESSED_OPERATIONS = frozenset({"clear"})
DEFAULT_MODE_SETTER = "useProgram"
DEFAULT_TARGETED_SETTERS = frozenset({
    "bindBuffer",
    "bindFramebuffer",
    "bindRenderbuffer",
    "bindTexture",
})
DEFAULT_WARMUP_FRAMES = 3


class ProxyPolicyConfig(TypedDict, total=False):
    """Fixed execution policy applied by every :class:`CommandProxy`."""

    suppressed_operations: frozenset[str]
    """Operations the owner performs once per frame itself; never executed for a requester."""

    mode_setter: str | None
    """Operation whose most recent call is replayed at the start of every frame."""

    targeted_setters: frozenset[str]
    """Operations whose most recent call per first argument is replayed every frame."""

    record_results: bool
    """Whether primitive results are appended to the diagnostic result trace."""

    trace_limit: int | None
    """Maximum trace entries kept per operation (``None`` keeps everything)."""


class FrameCoordinatorConfig(TypedDict, total=False):
    """Timing configuration for the :class:`FrameCoordinator`."""

    warmup_frames: int
    """Collect/flush cycles run for a newly attached requester before it joins the frame loop."""

    frame_end_timeout: float | None
    """Seconds to wait for a requester's frame-end signal (``None`` waits forever)."""

    reply_timeout: float | None
    """Reply timeout sent to requesters at bootstrap; a client without its own adopts it."""

    frame_interval: float
    """Seconds slept between frames when running the frame loop."""


class HostConfig(TypedDict, total=False):
    """Configuration for a :class:`SharedResourceHost`."""

    policy: ProxyPolicyConfig
    frames: FrameCoordinatorConfig


def default_policy() -> ProxyPolicyConfig:
    return ProxyPolicyConfig(
        suppressed_operations=DEFAULT_SUPPRESSED_OPERATIONS,
        mode_setter=DEFAULT_MODE_SETTER,
        targeted_setters=DEFAULT_TARGETED_SETTERS,
        record_results=True,
        trace_limit=None,
    )


def default_frame_config() -> FrameCoordinatorConfig:
    return FrameCoordinatorConfig(
        warmup_frames=DEFAULT_WARMUP_FRAMES,
        frame_end_timeout=None,
        reply_timeout=None,
        frame_interval=0.0,
    )


def resolve_policy(policy: ProxyPolicyConfig | None) -> ProxyPolicyConfig:
    """Fill in defaults for any policy keys the caller left out."""
    resolved = default_policy()
    if policy:
        resolved.update(policy)
    resolved["suppressed_operations"] = frozenset(resolved["suppressed_operations"])
    resolved["targeted_setters"] = frozenset(resolved["targeted_setters"])
    return resolved


def resolve_frame_config(config: FrameCoordinatorConfig | None) -> FrameCoordinatorConfig:
    resolved = default_frame_config()
    if config:
        resolved.update(config)
    if resolved["warmup_frames"] < 0:
        raise ValueError(f"warmup_frames must be >= 0, got {resolved['warmup_frames']}")
    return resolved


def _check_keys(section: str, data: dict[str, Any], allowed: type) -> None:
    unknown = set(data) - set(allowed.__annotations__)
    if unknown:
        raise ValueError(f"Unknown {section} keys in manifest: {sorted(unknown)}")


def load_manifest(path: str | Path) -> HostConfig:
    """Load a YAML host manifest and merge it over the defaults.

    The manifest has two optional sections::

        policy:
          suppressed_operations: [clear]
          mode_setter: useProgram
          targeted_setters: [bindBuffer, bindTexture]
        frames:
          warmup_frames: 3
          frame_end_timeout: 0.5

    Raises:
        ValueError: If the manifest is not a mapping or contains unknown keys.
    """
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Manifest {path} must be a mapping, got {type(raw).__name__}")
    _check_keys("top-level", raw, HostConfig)

    policy_data = raw.get("policy") or {}
    frames_data = raw.get("frames") or {}
    _check_keys("policy", policy_data, ProxyPolicyConfig)
    _check_keys("frames", frames_data, FrameCoordinatorConfig)

    logger.debug("Loaded manifest from %s", path)
    return HostConfig(
        policy=resolve_policy(ProxyPolicyConfig(**policy_data)),
        frames=resolve_frame_config(FrameCoordinatorConfig(**frames_data)),
    )
