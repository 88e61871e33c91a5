import queue
import threading

import pytest

from livetrans.core.channel import Channel, ChannelClosed


def test_get_drains_before_reporting_closed() -> None:
    ch = Channel(poll_interval=0.01)
    ch.put(1)
    ch.put(2)
    ch.close()

    assert ch.get() == 1
    assert ch.get() == 2
    with pytest.raises(ChannelClosed):
        ch.get()


def test_put_after_close_raises() -> None:
    ch = Channel(name="utterances")
    ch.close()
    with pytest.raises(ChannelClosed):
        ch.put(1)


def test_get_timeout_raises_empty() -> None:
    ch = Channel(poll_interval=0.01)
    with pytest.raises(queue.Empty):
        ch.get(timeout=0.03)


def test_iteration_stops_at_close() -> None:
    ch = Channel(poll_interval=0.01)
    for i in range(3):
        ch.put(i)
    ch.close()
    assert list(ch) == [0, 1, 2]


def test_multiple_consumers_take_each_item_once() -> None:
    ch = Channel(poll_interval=0.01)
    seen = []
    lock = threading.Lock()

    def consume() -> None:
        for item in ch:
            with lock:
                seen.append(item)

    threads = [threading.Thread(target=consume) for _ in range(3)]
    for t in threads:
        t.start()
    for i in range(100):
        ch.put(i)
    ch.close()
    for t in threads:
        t.join(timeout=5)

    assert sorted(seen) == list(range(100))
