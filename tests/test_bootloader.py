"""Tests for the bootloader and the machine image.

The boot chain reads a machine image (JSON or defaults), runs the
Power-On Self-Test over the resource totals, checks the boot settings,
and hands back a running scheduler context.
"""

import json
from pathlib import Path

import pytest

from py_tasksim.bootloader import (
    DEFAULT_TOTAL_CORES,
    DEFAULT_TOTAL_HDD,
    DEFAULT_TOTAL_RAM,
    BootError,
    Bootloader,
    BootStage,
    MachineImage,
    PostResult,
)
from py_tasksim.context import ContextState
from py_tasksim.errors import InvalidConfigError
from py_tasksim.scheduler import PolicyName

_IMAGE_RAM = 256
_IMAGE_HDD = 128
_IMAGE_CORES = 2


def _write_image(tmp_path: Path, **settings: object) -> Path:
    path = tmp_path / "machine.json"
    path.write_text(json.dumps(settings))
    return path


# -- Cycle 1: Data types ----------------------------------------------------


class TestBootStage:
    """Verify the boot stage enum."""

    def test_stages_in_order(self) -> None:
        """The chain has four stages."""
        assert [s.value for s in BootStage] == ["firmware", "bootloader", "kernel", "userspace"]


class TestPostResult:
    """Verify POST result aggregation."""

    def test_passed_when_all_ok(self) -> None:
        """All three checks passing means POST passed."""
        assert PostResult(memory_ok=True, disk_ok=True, cores_ok=True).passed

    def test_failed_when_any_fails(self) -> None:
        """One failing check fails POST."""
        assert not PostResult(memory_ok=True, disk_ok=False, cores_ok=True).passed


class TestMachineImage:
    """Verify the machine image and its JSON form."""

    def test_defaults(self) -> None:
        """The default image describes a 1024/2048/4 FCFS machine."""
        image = MachineImage()
        assert (image.total_ram, image.total_hdd, image.total_cores) == (
            DEFAULT_TOTAL_RAM,
            DEFAULT_TOTAL_HDD,
            DEFAULT_TOTAL_CORES,
        )
        assert image.default_policy == "fcfs"

    def test_frozen(self) -> None:
        """Images are immutable."""
        image = MachineImage()
        with pytest.raises(AttributeError):
            image.total_ram = 1  # type: ignore[misc]

    def test_from_json_partial(self) -> None:
        """Missing keys take their defaults."""
        image = MachineImage.from_json('{"total_ram": 64, "default_policy": "rr"}')
        assert image.total_ram == 64
        assert image.default_policy == "rr"
        assert image.total_cores == DEFAULT_TOTAL_CORES

    def test_from_json_unknown_key(self) -> None:
        """Unknown keys are rejected."""
        with pytest.raises(ValueError, match="Unknown machine image keys: turbo"):
            MachineImage.from_json('{"turbo": true}')

    def test_from_json_not_object(self) -> None:
        """The image must be a JSON object."""
        with pytest.raises(ValueError, match="JSON object"):
            MachineImage.from_json("[1, 2, 3]")


# -- Cycle 2: Boot chain ----------------------------------------------------


class TestBootChain:
    """Verify the full boot."""

    def test_boot_defaults(self) -> None:
        """Booting without an image gives a running default machine."""
        bootloader = Bootloader()
        context = bootloader.boot()
        assert context.state is ContextState.RUNNING
        assert bootloader.stage is BootStage.USERSPACE
        assert context.resources().total_ram == DEFAULT_TOTAL_RAM
        assert bootloader.context is context

    def test_overrides_win(self) -> None:
        """Totals passed to the bootloader override the image."""
        context = Bootloader(total_ram=100, total_hdd=50, total_cores=4).boot()
        snap = context.resources()
        assert (snap.total_ram, snap.total_hdd, snap.total_cores) == (100, 50, 4)

    def test_boot_log_has_post_and_image(self) -> None:
        """The boot log records each POST check and the image load."""
        bootloader = Bootloader(total_ram=100, total_hdd=50, total_cores=4)
        bootloader.boot()
        log = bootloader.boot_log
        assert "[POST] Memory: 100 MB ... OK" in log
        assert "[POST] Disk: 50 MB ... OK" in log
        assert "[POST] CPU: 4 cores ... OK" in log
        assert "[BOOT] Loading machine image v0.1.0 ... OK" in log

    def test_zero_totals_pass_post(self) -> None:
        """An empty machine is valid."""
        context = Bootloader(total_ram=0, total_hdd=0, total_cores=0).boot()
        assert context.resources().total_cores == 0

    def test_negative_total_fails_post(self) -> None:
        """A negative total fails POST with InvalidConfigError."""
        bootloader = Bootloader(total_ram=-5)
        with pytest.raises(InvalidConfigError, match="POST failed: Memory: -5 MB ... FAIL"):
            bootloader.boot()
        assert bootloader.context is None

    def test_image_from_file(self, tmp_path: Path) -> None:
        """Settings are read from a JSON image."""
        path = _write_image(
            tmp_path,
            total_ram=_IMAGE_RAM,
            total_hdd=_IMAGE_HDD,
            total_cores=_IMAGE_CORES,
            default_policy="priority",
            workdir=str(tmp_path),
            seed=5,
        )
        bootloader = Bootloader(image_path=path)
        context = bootloader.boot()
        assert context.resources().total_ram == _IMAGE_RAM
        assert context.engine.policy_name is PolicyName.PRIORITY
        assert context.workdir == tmp_path
        image = bootloader.image
        assert image is not None
        assert image.seed == 5

    def test_missing_image_file(self, tmp_path: Path) -> None:
        """An unreadable image is a BootError."""
        with pytest.raises(BootError, match="Cannot load machine image"):
            Bootloader(image_path=tmp_path / "missing.json").boot()

    def test_malformed_image(self, tmp_path: Path) -> None:
        """Invalid JSON is a BootError."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(BootError, match="Cannot load machine image"):
            Bootloader(image_path=path).boot()

    @pytest.mark.parametrize(
        ("settings", "message"),
        [
            ({"default_policy": "lottery"}, "Unknown scheduling policy: lottery"),
            ({"backend": "docker"}, "Unknown execution backend: docker"),
            ({"quantum": 0}, "Quantum must be at least 1"),
            ({"capacity": 0}, "Capacity must be at least 1"),
            ({"reap_timeout": 0}, "Reap timeout must be positive"),
        ],
    )
    def test_bad_settings(self, tmp_path: Path, settings: dict[str, object], message: str) -> None:
        """Nonsensical boot settings stop the chain at the bootloader stage."""
        bootloader = Bootloader(image_path=_write_image(tmp_path, **settings))
        with pytest.raises(BootError, match=message):
            bootloader.boot()
        assert bootloader.stage is BootStage.BOOTLOADER

    def test_boot_error_is_runtime_error(self) -> None:
        """BootError can be caught as RuntimeError."""
        assert issubclass(BootError, RuntimeError)
