"""
A small sampling profiler attached to sampled transactions.

A daemon thread wakes up at a fixed frequency and records the stack of
every other thread in the process until the profile is stopped.
"""

import os
import platform
import sys
import threading
import uuid

from beacon_sdk.utils import capture_internal_exceptions, logger, nanosecond_time

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import FrameType
    from typing import Any
    from typing import Dict
    from typing import List
    from typing import Optional
    from typing import Tuple

    from beacon_sdk._types import Event
    from beacon_sdk.tracing import Transaction

    RawFrame = Tuple[
        str,  # abs_path
        Optional[str],  # module
        str,  # function
        int,  # lineno
    ]


# The default sampling frequency to use. This is set at 101 in order to
# mitigate the effects of lockstep sampling.
DEFAULT_SAMPLING_FREQUENCY = 101

# The maximum number of stack frames to capture. This is used to avoid
# extracting stacks that are too deep.
MAX_STACK_DEPTH = 128


def extract_frame(frame: "FrameType") -> "RawFrame":
    return (
        frame.f_code.co_filename,
        frame.f_globals.get("__name__"),
        frame.f_code.co_name,
        frame.f_lineno,
    )


def extract_stack(
    frame: "Optional[FrameType]", max_stack_depth: int = MAX_STACK_DEPTH
) -> "List[RawFrame]":
    """
    Extracts the stack starting the specified frame. The extracted stack
    assumes the specified frame is the top of the stack, and works back
    to the bottom of the stack.
    """
    stack = []
    while frame is not None and len(stack) < max_stack_depth:
        stack.append(extract_frame(frame))
        frame = frame.f_back
    return stack


class Profile:
    def __init__(
        self,
        transaction: "Transaction",
        frequency: int = DEFAULT_SAMPLING_FREQUENCY,
    ) -> None:
        self.transaction = transaction
        self.event_id = uuid.uuid4().hex
        self._interval = 1.0 / frequency

        self._start_ns: "Optional[int]" = None
        self._stop_ns: "Optional[int]" = None

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: "Optional[threading.Thread]" = None

        self._frames: "List[Dict[str, Any]]" = []
        self._frame_indices: "Dict[RawFrame, int]" = {}
        self._stacks: "List[List[int]]" = []
        self._stack_indices: "Dict[Tuple[int, ...], int]" = {}
        self._samples: "List[Dict[str, Any]]" = []

        transaction._profile = self

    def __repr__(self) -> str:
        return "<%s(event_id=%r, active=%r)>" % (
            self.__class__.__name__,
            self.event_id,
            self.active,
        )

    @property
    def active(self) -> bool:
        return self._start_ns is not None and self._stop_ns is None

    def start(self) -> None:
        if self._start_ns is not None:
            return

        logger.debug("[Profiling] Starting profile %s", self.event_id)
        self._start_ns = nanosecond_time()

        # make sure the thread is a daemon here otherwise this
        # can keep the application running after other threads
        # have exited
        self._thread = threading.Thread(
            name="beacon.profiler", target=self._run, daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        if not self.active:
            return

        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._interval * 10)
        self._stop_ns = nanosecond_time()
        logger.debug("[Profiling] Stopped profile %s", self.event_id)

    def _run(self) -> None:
        self._sample()
        while not self._stop_event.wait(timeout=self._interval):
            self._sample()

    def _sample(self) -> None:
        with capture_internal_exceptions():
            start_ns = self._start_ns or 0
            elapsed = nanosecond_time() - start_ns
            own_thread = threading.get_ident()

            with self._lock:
                for tid, frame in sys._current_frames().items():
                    if tid == own_thread:
                        continue
                    stack_id = self._intern_stack(extract_stack(frame))
                    self._samples.append(
                        {
                            "elapsed_since_start_ns": str(elapsed),
                            "thread_id": str(tid),
                            "stack_id": stack_id,
                        }
                    )

    def _intern_stack(self, stack: "List[RawFrame]") -> int:
        frame_ids = []
        for raw_frame in stack:
            index = self._frame_indices.get(raw_frame)
            if index is None:
                abs_path, module, function, lineno = raw_frame
                index = len(self._frames)
                self._frame_indices[raw_frame] = index
                self._frames.append(
                    {
                        "abs_path": abs_path,
                        "filename": os.path.basename(abs_path),
                        "module": module,
                        "function": function,
                        "lineno": lineno,
                    }
                )
            frame_ids.append(index)

        key = tuple(frame_ids)
        stack_id = self._stack_indices.get(key)
        if stack_id is None:
            stack_id = len(self._stacks)
            self._stack_indices[key] = stack_id
            self._stacks.append(frame_ids)
        return stack_id

    def valid(self) -> bool:
        if self._stop_ns is None:
            return False

        with self._lock:
            # a profile needs at least two samples to describe anything
            if len(self._samples) < 2:
                logger.debug("[Profiling] Discarding profile because insufficient samples.")
                return False

        return True

    def get_profile_context(self) -> "Dict[str, Any]":
        return {"profile_id": self.event_id}

    def to_json(self, event: "Event") -> "Dict[str, Any]":
        assert self._start_ns is not None
        assert self._stop_ns is not None

        with self._lock:
            profile = {
                "frames": list(self._frames),
                "stacks": list(self._stacks),
                "samples": list(self._samples),
            }

        return {
            "environment": event.get("environment"),
            "event_id": self.event_id,
            "platform": "python",
            "profile": profile,
            "release": event.get("release", ""),
            "timestamp": event.get("start_timestamp"),
            "version": "1",
            "device": {
                "architecture": platform.machine(),
            },
            "os": {
                "name": platform.system(),
                "version": platform.release(),
            },
            "runtime": {
                "name": platform.python_implementation(),
                "version": platform.python_version(),
            },
            "transactions": [
                {
                    "id": event.get("event_id"),
                    "name": self.transaction.name,
                    "relative_start_ns": "0",
                    "relative_end_ns": str(self._stop_ns - self._start_ns),
                    "trace_id": self.transaction.trace_id,
                    "active_thread_id": str(threading.main_thread().ident),
                }
            ],
        }
