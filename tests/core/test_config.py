"""Tests for NotifyConfig."""

import pytest
from pydantic import ValidationError

from core.config import NotifyConfig
from core.models import Channel


class TestNotifyConfig:

    def test_defaults_meter_sms_only(self):
        config = NotifyConfig()
        assert config.cost_for(Channel.SMS) == 1
        assert config.cost_for(Channel.EMAIL) == 0
        assert config.is_metered(Channel.SMS)
        assert not config.is_metered(Channel.EMAIL)

    def test_channel_costs_override(self):
        config = NotifyConfig(channel_costs={"email": 2})
        assert config.cost_for(Channel.EMAIL) == 2
        assert not config.is_metered(Channel.SMS)

    def test_negative_cost_rejected(self):
        with pytest.raises(ValidationError):
            NotifyConfig(channel_costs={"sms": -1})

    def test_bulk_workers_bounded(self):
        with pytest.raises(ValidationError):
            NotifyConfig(bulk_max_workers=0)

    def test_sms_length_cap(self):
        with pytest.raises(ValidationError):
            NotifyConfig(sms_max_length=2000)

    def test_timezone_default_is_valid(self):
        assert NotifyConfig().timezone == "America/Denver"

    def test_known_timezone_accepted(self):
        assert NotifyConfig(timezone="America/Chicago").timezone == "America/Chicago"

    @pytest.mark.parametrize("name", ["Mars/Olympus_Mons", "", "not a zone"])
    def test_unknown_timezone_rejected_at_construction(self, name):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            NotifyConfig(timezone=name)
