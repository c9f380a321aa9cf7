import threading
import time

from flask import Flask
from flask_socketio import SocketIO

from meowchat.services.chat.clock import ManualScheduler, SocketIOScheduler


def test_tasks_fire_in_deadline_order():
    clock = ManualScheduler(start=0.0)
    fired = []
    clock.call_later(2, fired.append, 'b')
    clock.call_later(1, fired.append, 'a')
    clock.call_later(5, fired.append, 'c')
    clock.advance(3)
    assert fired == ['a', 'b']
    assert clock.now() == 3
    clock.advance(2)
    assert fired == ['a', 'b', 'c']


def test_cancelled_task_never_fires():
    clock = ManualScheduler(start=0.0)
    fired = []
    task = clock.call_later(1, fired.append, 'x')
    assert task.cancel() is True
    assert task.cancel() is False
    clock.advance(10)
    assert fired == []
    assert not task.pending


def test_task_scheduled_from_callback_fires_within_window():
    clock = ManualScheduler(start=0.0)
    fired = []

    def first():
        fired.append(('first', clock.now()))
        clock.call_later(1, lambda: fired.append(('second', clock.now())))

    clock.call_later(1, first)
    clock.advance(5)
    assert fired == [('first', 1.0), ('second', 2.0)]


def test_failing_callback_does_not_stop_others():
    clock = ManualScheduler(start=0.0)
    fired = []

    def boom():
        raise RuntimeError('boom')

    clock.call_later(1, boom)
    clock.call_later(2, fired.append, 'still here')
    clock.advance(3)
    assert fired == ['still here']


def test_clock_never_moves_backwards_on_nested_advance():
    clock = ManualScheduler(start=0.0)
    clock.call_later(1, clock.advance, 5)
    clock.advance(2)
    assert clock.now() == 6


def test_socketio_scheduler_fires_and_cancels_background_tasks():
    scheduler = SocketIOScheduler(SocketIO(Flask(__name__), async_mode='threading'))
    assert abs(scheduler.now() - time.time()) < 1

    fired = threading.Event()
    skipped = []
    task = scheduler.call_later(0.05, fired.set, name='fires')
    cancelled = scheduler.call_later(0.05, skipped.append, 'late', name='cancelled')
    assert cancelled.cancel() is True

    assert fired.wait(2)
    assert task.fired
    time.sleep(0.3)
    assert skipped == []
    assert not cancelled.fired
