"""
Time stepping parameters.
"""

from dataclasses import dataclass, field


@dataclass
class TimeDomain:
    """Current time t and step size dt."""
    t: float = 0.0
    dt: float = 0.0


@dataclass
class TimeStep:
    """
    Time step counter.

    Attributes:
        step: Number of completed increments
        time: Current time and step size
        stop_time: Last time instance to reach
    """
    step: int = 0
    time: TimeDomain = field(default_factory=TimeDomain)
    stop_time: float = 1.0

    @classmethod
    def uniform(cls, dt: float, stop_time: float, start_time: float = 0.0) -> 'TimeStep':
        if dt <= 0.0:
            raise ValueError(f"Time step size must be positive, got {dt}")
        return cls(0, TimeDomain(start_time, dt), stop_time)

    def has_reached_end(self) -> bool:
        return self.time.t + 1.0e-10 * self.time.dt >= self.stop_time

    def increment(self) -> bool:
        """Advance to the next time instance, False when past the stop time."""
        if self.has_reached_end():
            return False
        self.step += 1
        self.time.t += self.time.dt
        return True
