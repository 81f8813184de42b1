"""Resource pool — admission accounting for memory, storage, and cores.

The simulated machine has three independent resource kinds:

- **RAM** in megabytes.
- **HDD** (storage) in megabytes.
- **Cores** — whole compute units.

Totals are fixed when the pool is initialised.  Every task reserves a
fixed footprint of all three when it is admitted and gives the same
footprint back when it leaves.  The pool itself never knows about
tasks; it only moves numbers between "available" and "in use".

Why all three in one critical section?
    A reservation must be all-or-nothing.  If RAM were decremented and
    then the core check failed, another caller could observe the torn
    intermediate state and be wrongly denied.  One lock around the
    check *and* the decrement makes ``try_reserve`` linearizable.

Why an assert on over-release instead of clamping?
    Releasing more than was reserved is always a caller bug.  Clamping
    would hide the bug and silently break conservation; the assert
    surfaces it during testing.
"""

from dataclasses import dataclass
from threading import Lock

from py_tasksim.errors import InvalidConfigError

_PERCENT = 100.0


@dataclass(frozen=True)
class Footprint:
    """The resources one task holds while it is registered.

    Attributes:
        ram: Memory in MB.
        hdd: Storage in MB.
        cpu: Compute cores.

    """

    ram: int
    hdd: int
    cpu: int

    def __str__(self) -> str:
        """Format as ``50MB RAM / 5MB HDD / 1 core(s)``."""
        return f"{self.ram}MB RAM / {self.hdd}MB HDD / {self.cpu} core(s)"


@dataclass(frozen=True)
class PoolSnapshot:
    """A consistent point-in-time copy of all six pool counters."""

    total_ram: int
    total_hdd: int
    total_cores: int
    available_ram: int
    available_hdd: int
    available_cores: int

    @property
    def used_ram(self) -> int:
        """Return RAM currently reserved by tasks."""
        return self.total_ram - self.available_ram

    @property
    def used_hdd(self) -> int:
        """Return storage currently reserved by tasks."""
        return self.total_hdd - self.available_hdd

    @property
    def used_cores(self) -> int:
        """Return cores currently reserved by tasks."""
        return self.total_cores - self.available_cores

    @property
    def ram_percent(self) -> float:
        """Return RAM usage as a percentage (0.0 for an empty machine)."""
        return _percent(self.used_ram, self.total_ram)

    @property
    def hdd_percent(self) -> float:
        """Return storage usage as a percentage."""
        return _percent(self.used_hdd, self.total_hdd)

    @property
    def cores_percent(self) -> float:
        """Return core usage as a percentage."""
        return _percent(self.used_cores, self.total_cores)


def _percent(used: int, total: int) -> float:
    return used / total * _PERCENT if total else 0.0


class ResourcePool:
    """Track total and available RAM, storage, and cores.

    One lock guards all six counters.  ``try_reserve`` and ``release``
    each run as a single critical section, so concurrent admission and
    termination can never push an available count outside
    ``[0, total]``.
    """

    def __init__(self, *, total_ram: int, total_hdd: int, total_cores: int) -> None:
        """Create a pool with every resource available.

        Args:
            total_ram: Total memory in MB.
            total_hdd: Total storage in MB.
            total_cores: Total compute cores.

        Raises:
            InvalidConfigError: If any total is negative.

        """
        self._lock = Lock()
        self._total_ram = 0
        self._total_hdd = 0
        self._total_cores = 0
        self._available_ram = 0
        self._available_hdd = 0
        self._available_cores = 0
        self.initialize(total_ram, total_hdd, total_cores)

    def initialize(self, total_ram: int, total_hdd: int, total_cores: int) -> None:
        """Set the totals and make everything available.

        Raises:
            InvalidConfigError: If any total is negative.

        """
        totals = {"RAM": total_ram, "HDD": total_hdd, "cores": total_cores}
        bad = [f"{kind}={value}" for kind, value in totals.items() if value < 0]
        if bad:
            msg = f"Resource totals must be non-negative: {', '.join(bad)}"
            raise InvalidConfigError(msg)
        with self._lock:
            self._total_ram = total_ram
            self._total_hdd = total_hdd
            self._total_cores = total_cores
            self._available_ram = total_ram
            self._available_hdd = total_hdd
            self._available_cores = total_cores

    @property
    def total_ram(self) -> int:
        """Return total memory in MB."""
        return self._total_ram

    @property
    def total_hdd(self) -> int:
        """Return total storage in MB."""
        return self._total_hdd

    @property
    def total_cores(self) -> int:
        """Return the total number of cores."""
        return self._total_cores

    @property
    def available_ram(self) -> int:
        """Return unreserved memory in MB."""
        with self._lock:
            return self._available_ram

    @property
    def available_hdd(self) -> int:
        """Return unreserved storage in MB."""
        with self._lock:
            return self._available_hdd

    @property
    def available_cores(self) -> int:
        """Return the number of unreserved cores."""
        with self._lock:
            return self._available_cores

    def can_fit(self, ram: int, hdd: int, cpu: int) -> bool:
        """Return whether a footprint would fit right now (advisory only)."""
        with self._lock:
            return self._fits(ram, hdd, cpu)

    def try_reserve(self, ram: int, hdd: int, cpu: int) -> bool:
        """Reserve a footprint if, and only if, all three kinds fit.

        Args:
            ram: Memory in MB.
            hdd: Storage in MB.
            cpu: Cores.

        Returns:
            True if the footprint was reserved, False if nothing changed.

        Raises:
            ValueError: If any requested amount is negative.

        """
        _check_amounts(ram, hdd, cpu)
        with self._lock:
            if not self._fits(ram, hdd, cpu):
                return False
            self._available_ram -= ram
            self._available_hdd -= hdd
            self._available_cores -= cpu
            return True

    def release(self, ram: int, hdd: int, cpu: int) -> None:
        """Return a previously reserved footprint to the pool.

        Precondition: the caller reserved exactly this footprint and has
        not released it yet.  Breaking it is a programming error and
        trips an assertion instead of being clamped.

        Raises:
            ValueError: If any amount is negative.

        """
        _check_amounts(ram, hdd, cpu)
        with self._lock:
            self._available_ram += ram
            self._available_hdd += hdd
            self._available_cores += cpu
            assert self._available_ram <= self._total_ram, "RAM over-released"  # noqa: S101
            assert self._available_hdd <= self._total_hdd, "HDD over-released"  # noqa: S101
            assert self._available_cores <= self._total_cores, "cores over-released"  # noqa: S101

    def snapshot(self) -> PoolSnapshot:
        """Return all six counters read under one lock acquisition."""
        with self._lock:
            return PoolSnapshot(
                total_ram=self._total_ram,
                total_hdd=self._total_hdd,
                total_cores=self._total_cores,
                available_ram=self._available_ram,
                available_hdd=self._available_hdd,
                available_cores=self._available_cores,
            )

    def _fits(self, ram: int, hdd: int, cpu: int) -> bool:
        """Check all three dimensions (caller must hold the lock)."""
        return (
            self._available_ram >= ram
            and self._available_hdd >= hdd
            and self._available_cores >= cpu
        )

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        snap = self.snapshot()
        return (
            f"ResourcePool(ram={snap.available_ram}/{snap.total_ram}, "
            f"hdd={snap.available_hdd}/{snap.total_hdd}, "
            f"cores={snap.available_cores}/{snap.total_cores})"
        )


def _check_amounts(ram: int, hdd: int, cpu: int) -> None:
    if ram < 0 or hdd < 0 or cpu < 0:
        msg = f"Resource amounts must be non-negative (ram={ram}, hdd={hdd}, cpu={cpu})"
        raise ValueError(msg)
