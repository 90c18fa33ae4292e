"""
Tests for deriving conversation summaries from the message log.
"""
import pytest

from marketplace_chat.core.errors import TransientStoreError
from marketplace_chat.services.aggregator import ConversationAggregator
from marketplace_chat.services.directory import Directory
from marketplace_chat.services.store import MessageStore

from conftest import (
    BUYER_ID,
    LISTING_ID,
    OTHER_BUYER_ID,
    REMOVED_LISTING_ID,
    SELLER_ID,
    TEXTBOOK_ID,
    UNKNOWN_USER_ID,
)


@pytest.fixture
def aggregator(db, seeded) -> ConversationAggregator:
    return ConversationAggregator(MessageStore(db), Directory(db))


class TestConversationGrouping:
    """One summary per (listing, counterpart) pair."""

    def test_no_messages_means_no_conversations(self, aggregator):
        assert aggregator.conversations_for(BUYER_ID) == []

    def test_both_directions_fold_into_one_conversation(self, aggregator, add_message):
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "Is it available?", minutes=1)
        add_message(LISTING_ID, SELLER_ID, BUYER_ID, "Yes", minutes=2)
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "Great, tomorrow?", minutes=3)

        summaries = aggregator.conversations_for(SELLER_ID)
        assert len(summaries) == 1
        assert summaries[0].id == f"{LISTING_ID}_{BUYER_ID}"
        assert summaries[0].last_message == "Great, tomorrow?"
        assert summaries[0].last_message_sender_id == BUYER_ID

    def test_same_pair_on_two_listings_is_two_conversations(self, aggregator, add_message):
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "About the lamp", minutes=1)
        add_message(TEXTBOOK_ID, BUYER_ID, SELLER_ID, "About the book", minutes=2)

        summaries = aggregator.conversations_for(BUYER_ID)
        assert [s.listing_id for s in summaries] == [TEXTBOOK_ID, LISTING_ID]

    def test_different_buyers_on_one_listing_are_separate(self, aggregator, add_message):
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "First buyer", minutes=1)
        add_message(LISTING_ID, OTHER_BUYER_ID, SELLER_ID, "Second buyer", minutes=2)

        summaries = aggregator.conversations_for(SELLER_ID)
        assert [s.other_user_id for s in summaries] == [OTHER_BUYER_ID, BUYER_ID]
        assert [s.other_user_name for s in summaries] == ["Olly Other", "Bea Buyer"]

    def test_other_users_conversations_are_not_visible(self, aggregator, add_message):
        add_message(LISTING_ID, OTHER_BUYER_ID, SELLER_ID, "Private")
        assert aggregator.conversations_for(BUYER_ID) == []

    def test_equal_timestamps_pick_the_highest_id_as_latest(self, aggregator, add_message):
        """The preview agrees with the (created_at, id) order used by the thread view."""
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "Sent first", minutes=1, message_id="m-a")
        add_message(LISTING_ID, SELLER_ID, BUYER_ID, "Sent second", minutes=1, message_id="m-b")

        summaries = aggregator.conversations_for(BUYER_ID)
        assert summaries[0].last_message == "Sent second"


class TestReadFlags:
    """is_read and unread_count as seen by each participant."""

    def test_own_latest_message_reads_as_read(self, aggregator, add_message):
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "Hi! Is this still available?")

        buyer_view = aggregator.conversations_for(BUYER_ID)[0]
        assert buyer_view.is_read is True
        assert buyer_view.unread_count == 0

        seller_view = aggregator.conversations_for(SELLER_ID)[0]
        assert seller_view.is_read is False
        assert seller_view.unread_count == 1

    def test_unread_count_ignores_read_and_outbound_messages(self, aggregator, add_message):
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "Old, read", minutes=1, read=True)
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "New one", minutes=2)
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "Another", minutes=3)
        add_message(LISTING_ID, SELLER_ID, BUYER_ID, "Reply", minutes=4)

        seller_view = aggregator.conversations_for(SELLER_ID)[0]
        assert seller_view.unread_count == 2
        assert seller_view.is_read is True
        assert seller_view.last_message == "Reply"

    def test_unread_counts_are_per_conversation(self, aggregator, add_message):
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "a", minutes=1)
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "b", minutes=2)
        add_message(LISTING_ID, OTHER_BUYER_ID, SELLER_ID, "c", minutes=3)

        counts = {s.other_user_id: s.unread_count for s in aggregator.conversations_for(SELLER_ID)}
        assert counts == {BUYER_ID: 2, OTHER_BUYER_ID: 1}


class TestEnrichment:
    """Listing and counterpart details, with placeholders for missing rows."""

    def test_listing_details_come_from_the_directory(self, aggregator, add_message):
        add_message(LISTING_ID, BUYER_ID, SELLER_ID, "Hello")

        summary = aggregator.conversations_for(BUYER_ID)[0]
        assert summary.listing_title == "Desk lamp"
        assert summary.listing_image == "https://img.example/lamp-1.png"
        assert summary.listing_status == "active"
        assert summary.other_user_picture == "https://img.example/sam.png"

    def test_missing_listing_uses_placeholder_title(self, aggregator, add_message):
        add_message(REMOVED_LISTING_ID, BUYER_ID, SELLER_ID, "Hello")

        summary = aggregator.conversations_for(BUYER_ID)[0]
        assert summary.listing_title == "Deleted Listing"
        assert summary.listing_image is None
        assert summary.listing_status is None

    def test_placeholder_title_is_configurable(self, db, seeded, add_message):
        aggregator = ConversationAggregator(MessageStore(db), Directory(db), placeholder_title="Gone")
        add_message(REMOVED_LISTING_ID, BUYER_ID, SELLER_ID, "Hello")
        assert aggregator.conversations_for(BUYER_ID)[0].listing_title == "Gone"

    def test_missing_user_leaves_profile_empty(self, aggregator, add_message):
        add_message(LISTING_ID, UNKNOWN_USER_ID, SELLER_ID, "From a removed account")

        summary = aggregator.conversations_for(SELLER_ID)[0]
        assert summary.other_user_id == UNKNOWN_USER_ID
        assert summary.other_user_name is None
        assert summary.other_user_picture is None


class TestFailures:
    def test_store_failure_propagates(self, aggregator, monkeypatch):
        """A failed query never yields a partial list."""

        def failing_query(user_id):
            raise TransientStoreError("Message store query failed")

        monkeypatch.setattr(aggregator.store, "query_messages_for_user", failing_query)
        with pytest.raises(TransientStoreError):
            aggregator.conversations_for(SELLER_ID)


class TestSelfPairs:
    def test_legacy_self_message_does_not_break_aggregation(self, aggregator, monkeypatch):
        """Rows written before self-sends were rejected still aggregate."""
        from conftest import BASE_TIME
        from marketplace_chat.services.types import MessageRecord

        record = MessageRecord(
            id="m-self",
            listing_id=LISTING_ID,
            sender_id=SELLER_ID,
            receiver_id=SELLER_ID,
            content="Note to self",
            read=False,
            created_at=BASE_TIME,
        )
        monkeypatch.setattr(aggregator.store, "query_messages_for_user", lambda user_id: [record])

        summaries = aggregator.conversations_for(SELLER_ID)
        assert len(summaries) == 1
        assert summaries[0].other_user_id == SELLER_ID
        assert summaries[0].unread_count == 1
