############################################################################################################################################
# Coalescing Schedulers
#
# A coalescing scheduler calls a flush function at most once per arming:
#
#   schedule(flush)     arm, a second call before the flush ran is ignored
#   cancel_and_flush()  run a pending flush now, synchronously, and disarm
#   cancel()            disarm without flushing
#   set_interval(ms)    delay between arming and flushing
#
# ManualScheduler   flush runs on tick(), for headless services and tests
# QtFrameScheduler  flush runs from a single shot precise QTimer, one render frame after arming
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
from typing import Callable, Optional
#
from streamscope.config import FLUSH_INTERVAL_MS
#
# QT Libraries
# ----------------------------------------
try:
    from PyQt6.QtCore import Qt, QObject, QTimer
    PreciseTimerType = Qt.TimerType.PreciseTimer
except Exception:
    from PyQt5.QtCore import Qt, QObject, QTimer
    PreciseTimerType = Qt.PreciseTimer
#

class CoalescingScheduler:
    '''
    Base class, subclasses implement _arm() and _disarm().
    '''

    def __init__(self):
        self._pending: Optional[Callable[[], None]] = None
        self.num_scheduled = 0                                                 # accepted schedule() calls
        self.num_flushed   = 0                                                 # flushes that ran

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, flush: Callable[[], None]) -> bool:
        ''' Arm the scheduler, returns False if a flush is already pending '''
        if self._pending is not None:
            return False
        self._pending = flush
        self.num_scheduled += 1
        self._arm()
        return True

    def cancel_and_flush(self) -> bool:
        ''' Run the pending flush now, returns True if there was one '''
        if self._pending is None:
            return False
        self._disarm()
        self._fire()
        return True

    def cancel(self) -> None:
        ''' Drop the pending flush '''
        if self._pending is not None:
            self._disarm()
            self._pending = None

    def set_interval(self, interval_ms: int) -> None:
        ''' Schedulers without a timer ignore the interval '''
        pass

    def _fire(self) -> None:
        flush, self._pending = self._pending, None                             # disarm before running, flush may schedule again
        if flush is not None:
            self.num_flushed += 1
            flush()

    def _arm(self) -> None:
        raise NotImplementedError

    def _disarm(self) -> None:
        raise NotImplementedError


class ManualScheduler(CoalescingScheduler):
    ''' Flush runs when the owner calls tick(), e.g. from a fixed interval loop '''

    def _arm(self) -> None:
        pass

    def _disarm(self) -> None:
        pass

    def tick(self) -> bool:
        ''' Run the pending flush, returns True if there was one '''
        if self._pending is None:
            return False
        self._fire()
        return True


class QtFrameScheduler(CoalescingScheduler):
    """
    Flush runs from the Qt event loop interval_ms after the first arrival.

    Lives in the thread of its parent, schedule() has to be called from that thread.
    """

    def __init__(self, interval_ms: int = FLUSH_INTERVAL_MS, parent: QObject = None):
        super().__init__()
        self.timer = QTimer(parent)
        self.timer.setTimerType(PreciseTimerType)
        self.timer.setSingleShot(True)
        self.timer.setInterval(int(interval_ms))
        self.timer.timeout.connect(self._fire)

    @property
    def interval_ms(self) -> int:
        return self.timer.interval()

    def set_interval(self, interval_ms: int) -> None:
        self.timer.setInterval(int(interval_ms))

    def _arm(self) -> None:
        self.timer.start()

    def _disarm(self) -> None:
        if self.timer.isActive():
            self.timer.stop()
