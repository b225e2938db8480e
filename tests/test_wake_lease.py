import pytest

from bizclaw_device.daemon.wake_lease import WakeLease

from tests.conftest_fake_device import FakeClock


class TestWakeLease:
    def test_expires_past_ceiling_without_renewal(self):
        clock = FakeClock()
        lease = WakeLease(ceiling_seconds=600, clock=clock).acquire()

        clock.advance(599)
        assert lease.is_alive()
        clock.advance(1)
        assert lease.is_expired()
        assert not lease.is_alive()
        assert lease.remaining() == 0.0

    def test_renewal_pushes_expiry_out(self):
        clock = FakeClock()
        lease = WakeLease(ceiling_seconds=600, clock=clock).acquire()

        clock.advance(500)
        assert lease.renew()
        clock.advance(500)
        assert lease.is_alive()
        assert lease.renewal_count == 1
        assert lease.remaining() == 100

    def test_expired_lease_cannot_be_renewed(self):
        clock = FakeClock()
        lease = WakeLease(ceiling_seconds=10, clock=clock).acquire()
        clock.advance(11)
        assert lease.renew() is False

    def test_released_lease_is_dead(self):
        lease = WakeLease(ceiling_seconds=10, clock=FakeClock()).acquire()
        lease.release()
        lease.release()
        assert lease.released
        assert lease.is_expired()
        assert lease.renew() is False

    def test_unacquired_lease_is_not_held(self):
        lease = WakeLease(ceiling_seconds=10, clock=FakeClock())
        assert not lease.held
        assert lease.is_expired()

    def test_ceiling_must_be_positive(self):
        with pytest.raises(ValueError):
            WakeLease(ceiling_seconds=0)

    def test_to_dict(self):
        clock = FakeClock()
        lease = WakeLease(ceiling_seconds=600, clock=clock).acquire()
        clock.advance(100)
        assert lease.to_dict() == {
            "held": True,
            "alive": True,
            "ceiling_seconds": 600,
            "remaining_seconds": 500.0,
            "renewal_count": 0,
        }
