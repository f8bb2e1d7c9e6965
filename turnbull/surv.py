import math
from dataclasses import dataclass
from typing import Iterable, List, Tuple

import pandas as pd


class InvalidObservationError(ValueError):
    pass


@dataclass(frozen=True)
class Surv:
    """One subject: entry time plus the interval [exit_l, exit_r] holding its event or censoring."""
    indicator: int
    entry_time: float
    exit_l: float
    exit_r: float

    def is_censored(self) -> bool:
        return self.indicator == 0

    def is_interval_censored(self) -> bool:
        return self.exit_l != self.exit_r

    def get_entry_time(self) -> float:
        return self.entry_time

    def get_exit_l(self) -> float:
        return self.exit_l

    def get_exit_time(self) -> float:
        return self.exit_r

    def validate(self) -> None:
        times = (self.entry_time, self.exit_l, self.exit_r)
        if any(math.isnan(t) for t in times):
            raise InvalidObservationError(f"NaN time in {self}")
        if self.entry_time < 0:
            raise InvalidObservationError(f"Negative entry time in {self}")
        if self.entry_time > self.exit_l:
            raise InvalidObservationError(f"Entry after exit in {self}")
        if self.exit_l > self.exit_r:
            raise InvalidObservationError(f"exit_l > exit_r in {self}")


def new_event(indicator: int, entry_time: float, event_time: float) -> Surv:
    return Surv(indicator, entry_time, event_time, event_time)


def new_censor(entry_time: float, event_time: float) -> Surv:
    # Right censoring: event known to happen somewhere after event_time
    return Surv(0, entry_time, event_time, math.inf)


def new_interval(entry_time: float, lower: float, upper: float, indicator: int = 1) -> Surv:
    return Surv(indicator, entry_time, lower, upper)


def from_exit_vec(pairs: Iterable[Tuple[float, int]]) -> List[Surv]:
    """Exact observations entering at time 0, one per (event_time, indicator) pair."""
    return [Surv(int(ind), 0.0, float(t), float(t)) for t, ind in pairs]


def from_frame(df: pd.DataFrame, time_col: str, event_col: str, entry_col: str | None = None) -> List[Surv]:
    """
    Build observations from an in-memory table of (time, event) columns.
    Events are exact; rows with event == 0 become right-censored at their time.
    """
    for col in (time_col, event_col, entry_col):
        if col is not None and col not in df.columns:
            raise ValueError(f"Missing column '{col}'")

    t = pd.to_numeric(df[time_col], errors="coerce")
    if t.isna().any():
        raise ValueError(f"Non-numeric or missing values in '{time_col}'")
    e = pd.to_numeric(df[event_col], errors="coerce")
    if e.isna().any():
        raise ValueError(f"Non-numeric or missing values in '{event_col}'")
    e = e.astype(int)
    if entry_col:
        entry = pd.to_numeric(df[entry_col], errors="coerce")
        if entry.isna().any():
            raise ValueError(f"Non-numeric or missing values in '{entry_col}'")
    else:
        entry = pd.Series(0.0, index=df.index)

    out = []
    for ti, ei, si in zip(t, e, entry):
        if ei == 0:
            out.append(new_censor(float(si), float(ti)))
        else:
            out.append(new_event(int(ei), float(si), float(ti)))
    return out
