import threading

from chat_store.notify import Notifier


def test_send_then_wait_next():
    n = Notifier()
    assert n.send("one")
    assert n.send("two")
    assert n.wait_next() == "one"
    assert n.wait_next() == "two"


def test_wait_next_times_out():
    assert Notifier().wait_next(timeout=0.01) is None


def test_full_ring_drops_oldest_without_blocking():
    n = Notifier(maxlen=2)
    for i in range(5):
        assert n.send(f"m{i}")
    assert n.dropped == 3
    assert n.drain() == ["m3", "m4"]


def test_close_wakes_waiter():
    n = Notifier()
    got = []
    t = threading.Thread(target=lambda: got.append(n.wait_next()))
    t.start()
    n.close()
    t.join(timeout=5)
    assert not t.is_alive()
    assert got == [None]


def test_pending_messages_survive_close():
    n = Notifier()
    n.send("last words")
    n.close()
    assert n.send("ignored") is False
    assert n.wait_next() == "last words"
    assert n.wait_next() is None


def test_waiter_receives_message_from_other_thread():
    n = Notifier()
    t = threading.Thread(target=lambda: n.send("hello"))
    t.start()
    assert n.wait_next(timeout=5) == "hello"
    t.join()
