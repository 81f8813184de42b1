"""Bootloader — machine configuration, POST, and the boot chain.

Before the simulator can accept tasks it has to know what machine it
is simulating.  The boot chain mirrors real hardware:

    Firmware (read image + POST) → Bootloader → Context boot → Userspace

1. **Firmware** reads the machine image (a JSON file, or the defaults)
   and runs the Power-On Self-Test over the resource totals.
2. **Bootloader** checks the boot settings (policy, backend, quantum).
3. **Context boot** builds the pool, registry, backend, controller and
   scheduling engine.
4. **Userspace** is reached: the shell may attach.

A negative total fails POST with ``InvalidConfigError``.  A broken image
or an unknown policy or backend fails with ``BootError``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from enum import StrEnum
from pathlib import Path

from py_tasksim.context import SchedulerContext
from py_tasksim.errors import InvalidConfigError
from py_tasksim.execution import DEFAULT_REAP_TIMEOUT, BackendName
from py_tasksim.scheduler import TIME_QUANTUM, PolicyName
from py_tasksim.tasks import DEFAULT_CAPACITY

DEFAULT_TOTAL_RAM = 1024
DEFAULT_TOTAL_HDD = 2048
DEFAULT_TOTAL_CORES = 4


class BootStage(StrEnum):
    """Represent the current phase of the boot chain."""

    FIRMWARE = "firmware"
    BOOTLOADER = "bootloader"
    KERNEL = "kernel"
    USERSPACE = "userspace"


@dataclass(frozen=True)
class PostResult:
    """Capture the outcome of the Power-On Self-Test."""

    memory_ok: bool
    disk_ok: bool
    cores_ok: bool
    messages: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        """Return True only if every check passed."""
        return self.memory_ok and self.disk_ok and self.cores_ok


@dataclass(frozen=True)
class MachineImage:
    """Describe the simulated machine and its boot settings.

    Stored on disk as a flat JSON object with the same keys; missing
    keys take the defaults below.
    """

    version: str = "0.1.0"
    total_ram: int = DEFAULT_TOTAL_RAM
    total_hdd: int = DEFAULT_TOTAL_HDD
    total_cores: int = DEFAULT_TOTAL_CORES
    default_policy: str = PolicyName.FCFS.value
    capacity: int = DEFAULT_CAPACITY
    quantum: int = TIME_QUANTUM
    backend: str = BackendName.SIMULATED.value
    seed: int | None = None
    reap_timeout: float = DEFAULT_REAP_TIMEOUT
    workdir: str | None = None

    @classmethod
    def from_json(cls, text: str) -> MachineImage:
        """Parse an image from JSON text.

        Raises:
            ValueError: If the text is not a JSON object of known keys.

        """
        data = json.loads(text)
        if not isinstance(data, dict):
            msg = "Machine image must be a JSON object"
            raise ValueError(msg)  # noqa: TRY004
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            msg = f"Unknown machine image keys: {', '.join(unknown)}"
            raise ValueError(msg)
        return cls(**data)


class BootError(RuntimeError):
    """Raise when the boot chain cannot continue.

    Examples: unreadable image file, unknown policy or backend.
    """


class Bootloader:
    """Run the boot chain and hand back a running scheduler context.

    Usage::

        bootloader = Bootloader(total_ram=100, total_hdd=50, total_cores=4)
        context = bootloader.boot()

    """

    def __init__(
        self,
        *,
        image_path: Path | None = None,
        total_ram: int | None = None,
        total_hdd: int | None = None,
        total_cores: int | None = None,
    ) -> None:
        """Create a bootloader.

        Args:
            image_path: Path to a JSON machine image.  If None, the
                default image is used.
            total_ram: Override the image's RAM total.
            total_hdd: Override the image's storage total.
            total_cores: Override the image's core count.

        """
        self._image_path = image_path
        self._overrides = {
            key: value
            for key, value in (
                ("total_ram", total_ram),
                ("total_hdd", total_hdd),
                ("total_cores", total_cores),
            )
            if value is not None
        }
        self._stage: BootStage = BootStage.FIRMWARE
        self._boot_log: list[str] = []
        self._image: MachineImage | None = None
        self._context: SchedulerContext | None = None

    @property
    def stage(self) -> BootStage:
        """Return the current boot stage."""
        return self._stage

    @property
    def boot_log(self) -> list[str]:
        """Return the accumulated boot log messages."""
        return list(self._boot_log)

    @property
    def image(self) -> MachineImage | None:
        """Return the loaded machine image, or None before boot."""
        return self._image

    @property
    def context(self) -> SchedulerContext | None:
        """Return the booted context, or None if boot has not completed."""
        return self._context

    def boot(self) -> SchedulerContext:
        """Run the full boot chain and return a running context.

        Raises:
            InvalidConfigError: If POST rejects the resource totals.
            BootError: If the image cannot be loaded or its settings
                are unknown.

        """
        # Stage 1: Firmware reads the image and runs POST
        self._stage = BootStage.FIRMWARE
        image = self._load_image()
        post_result = self._run_post(image)
        if not post_result.passed:
            msg = "POST failed: " + ", ".join(m for m in post_result.messages if "FAIL" in m)
            raise InvalidConfigError(msg)
        self._boot_log.extend(f"[POST] {m}" for m in post_result.messages)

        # Stage 2: Bootloader checks the boot settings
        self._stage = BootStage.BOOTLOADER
        self._check_settings(image)
        self._image = image
        self._boot_log.append(f"[BOOT] Loading machine image v{image.version} ... OK")

        # Stage 3: Boot the context
        self._stage = BootStage.KERNEL
        context = SchedulerContext(
            total_ram=image.total_ram,
            total_hdd=image.total_hdd,
            total_cores=image.total_cores,
            policy=image.default_policy,
            capacity=image.capacity,
            quantum=image.quantum,
            backend=image.backend,
            seed=image.seed,
            reap_timeout=image.reap_timeout,
            workdir=Path(image.workdir) if image.workdir is not None else None,
        )
        context.boot()
        self._context = context

        # Stage 4: Userspace ready
        self._stage = BootStage.USERSPACE
        return context

    def _load_image(self) -> MachineImage:
        """Load the image from JSON (or defaults) and apply the overrides.

        Raises:
            BootError: If the image file is specified but cannot be read.

        """
        image = MachineImage()
        if self._image_path is not None:
            try:
                image = MachineImage.from_json(self._image_path.read_text())
            except (OSError, ValueError, TypeError) as e:
                msg = f"Cannot load machine image: {e}"
                raise BootError(msg) from e
        return replace(image, **self._overrides)

    @staticmethod
    def _run_post(image: MachineImage) -> PostResult:
        """Check that every resource total is non-negative."""
        memory_ok = image.total_ram >= 0
        disk_ok = image.total_hdd >= 0
        cores_ok = image.total_cores >= 0
        messages = (
            f"Memory: {image.total_ram} MB ... " + ("OK" if memory_ok else "FAIL"),
            f"Disk: {image.total_hdd} MB ... " + ("OK" if disk_ok else "FAIL"),
            f"CPU: {image.total_cores} cores ... " + ("OK" if cores_ok else "FAIL"),
        )
        return PostResult(
            memory_ok=memory_ok,
            disk_ok=disk_ok,
            cores_ok=cores_ok,
            messages=messages,
        )

    @staticmethod
    def _check_settings(image: MachineImage) -> None:
        """Reject unknown policies and backends and nonsensical limits.

        Raises:
            BootError: On the first bad setting.

        """
        if image.default_policy not in {p.value for p in PolicyName}:
            msg = f"Unknown scheduling policy: {image.default_policy}"
            raise BootError(msg)
        if image.backend not in {b.value for b in BackendName}:
            msg = f"Unknown execution backend: {image.backend}"
            raise BootError(msg)
        if image.quantum < 1:
            msg = f"Quantum must be at least 1, got {image.quantum}"
            raise BootError(msg)
        if image.capacity < 1:
            msg = f"Capacity must be at least 1, got {image.capacity}"
            raise BootError(msg)
        if image.reap_timeout <= 0:
            msg = f"Reap timeout must be positive, got {image.reap_timeout}"
            raise BootError(msg)
