#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Observers for the per-day computation trace.

A tracer only receives DayTrace records built from values the core already
computed; it cannot feed anything back into the computation.
"""
from __future__ import annotations

from typing import Callable, List

from ..shared.models import DayTrace


class ComputeTracer:
    def on_day_computed(self, trace: DayTrace) -> None:
        raise NotImplementedError


class NullTracer(ComputeTracer):
    """Accepts and drops every trace."""

    def on_day_computed(self, trace: DayTrace) -> None:
        return None


class ListTracer(ComputeTracer):
    """Collects every DayTrace in emission order."""

    def __init__(self) -> None:
        self.traces: List[DayTrace] = []

    def on_day_computed(self, trace: DayTrace) -> None:
        self.traces.append(trace)


class CallbackTracer(ComputeTracer):
    def __init__(self, callback: Callable[[DayTrace], None]) -> None:
        self.callback = callback

    def on_day_computed(self, trace: DayTrace) -> None:
        self.callback(trace)


class FanoutTracer(ComputeTracer):
    """Forwards each trace to several tracers in order."""

    def __init__(self, *tracers: ComputeTracer) -> None:
        self.tracers = [t for t in tracers if t is not None]

    def on_day_computed(self, trace: DayTrace) -> None:
        for t in self.tracers:
            t.on_day_computed(trace)
