"""
Model mapping tests.
"""

import pytest

from sqlalchemy import inspect

from fundflow.models import LinkToken, OutreachCampaign


class TestRelationships:

    @pytest.mark.parametrize("model,name", [
        (LinkToken, "contact"),
        (LinkToken, "segment"),
        (OutreachCampaign, "recipients"),
    ])
    def test_relationships_are_never_lazy_loaded(self, model, name):
        assert inspect(model).relationships[name].lazy == "raise"

    def test_recipients_cascade_leaves_deletes_to_the_database(self):
        recipients = inspect(OutreachCampaign).relationships["recipients"]

        assert recipients.passive_deletes is True
        assert recipients.cascade.delete_orphan
