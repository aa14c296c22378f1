"""Tests for the debounced DiscoveryEngine."""

import asyncio
import gc

import pytest
from bs4 import BeautifulSoup

from ratings_overlay.discovery import DiscoveryEngine, DiscoveryState, ProcessedSet
from ratings_overlay.page import Mutation, PageDocument

DEBOUNCE_MS = 20
SETTLE = 0.1

CARD = '<div class="slider-item"><a aria-label="{title}"></a></div>'


@pytest.fixture
def discovered():
    return []


@pytest.fixture
def document(browse_page_html):
    return PageDocument(browse_page_html, location="https://example.test/browse")


@pytest.fixture
def engine(document, discovered):
    return DiscoveryEngine(document, discovered.append, debounce_ms=DEBOUNCE_MS)


def ids(elements):
    return [e.get("id") for e in elements]


# =============================================================================
# ProcessedSet
# =============================================================================


def test_processed_set_uses_identity_not_markup():
    """ProcessedSet should tell apart cards with identical markup."""
    soup = BeautifulSoup('<div class="a"></div><div class="a"></div>', "html.parser")
    first, second = soup.find_all("div")
    processed = ProcessedSet()

    processed.add(first)

    assert first in processed
    assert second not in processed
    assert len(processed) == 1


def test_processed_set_does_not_keep_elements_alive():
    """ProcessedSet should drop members once they are garbage collected."""
    processed = ProcessedSet()
    soup = BeautifulSoup("<div></div>", "html.parser")
    processed.add(soup.div)

    del soup
    gc.collect()

    assert len(processed) == 0


# =============================================================================
# Initial scan
# =============================================================================


@pytest.mark.asyncio
async def test_start_scans_existing_cards_immediately(engine, discovered):
    """start should emit every existing card without waiting for the debounce."""
    engine.start()

    assert ids(discovered) == ["card-1", "card-2", "card-3"]
    assert engine.state is DiscoveryState.IDLE
    engine.stop()


@pytest.mark.asyncio
async def test_start_twice_does_not_rescan(engine, discovered):
    """A second start call should be ignored."""
    engine.start()
    engine.start()

    assert len(discovered) == 3
    engine.stop()


# =============================================================================
# Debounced batches
# =============================================================================


@pytest.mark.asyncio
async def test_inserted_card_emitted_after_debounce(engine, document, discovered):
    """Inserted cards should be emitted once the quiet period has passed."""
    engine.start()
    discovered.clear()

    document.insert_html(document.select(".row")[0], CARD.format(title="Dark"))

    assert discovered == []
    assert engine.state is DiscoveryState.BATCH_PENDING

    await asyncio.sleep(SETTLE)

    assert len(discovered) == 1
    assert discovered[0].a["aria-label"] == "Dark"
    assert engine.state is DiscoveryState.IDLE
    engine.stop()


@pytest.mark.asyncio
async def test_activity_resets_timer(document, discovered):
    """Each notification should push the batch deadline back."""
    engine = DiscoveryEngine(document, discovered.append, debounce_ms=200)
    engine.start()
    discovered.clear()
    row = document.select(".row")[0]

    document.insert_html(row, CARD.format(title="One"))
    await asyncio.sleep(0.12)
    document.insert_html(row, CARD.format(title="Two"))
    await asyncio.sleep(0.12)

    # 240ms after the first insert, but only 120ms after the second one
    assert discovered == []
    assert engine.get_status()["pending_notifications"] == 2

    await asyncio.sleep(0.3)

    assert [c.a["aria-label"] for c in discovered] == ["One", "Two"]
    engine.stop()


@pytest.mark.asyncio
async def test_rearming_replaces_timer(engine, document):
    """Re-arming should cancel the previous timer handle."""
    engine.start()

    document.insert_html(document.root, CARD.format(title="One"))
    first_timer = engine._timer
    document.insert_html(document.root, CARD.format(title="Two"))

    assert first_timer.cancelled()
    assert engine._timer is not first_timer
    assert not engine._timer.cancelled()
    engine.stop()


@pytest.mark.asyncio
async def test_descendants_of_added_nodes_are_found(engine, document, discovered):
    """Cards nested inside an added subtree should be found."""
    engine.start()
    discovered.clear()

    document.insert_html(
        document.root,
        '<section class="lolomo">' + CARD.format(title="A") + CARD.format(title="B") + "</section>",
    )
    await asyncio.sleep(SETTLE)

    assert [c.a["aria-label"] for c in discovered] == ["A", "B"]
    engine.stop()


@pytest.mark.asyncio
async def test_same_card_through_two_notifications_emitted_once(engine, document, discovered):
    """A card reported twice in one batch should be emitted once."""
    engine.start()
    discovered.clear()

    added = document.insert_html(document.root, '<section>' + CARD.format(title="Once") + "</section>")
    inner_card = added[0].select_one(".slider-item")
    document._notify([Mutation(target=added[0], added_nodes=[inner_card])])
    await asyncio.sleep(SETTLE)

    assert len(discovered) == 1
    assert discovered[0] is inner_card
    engine.stop()


@pytest.mark.asyncio
async def test_already_processed_card_not_reemitted(engine, document, discovered):
    """Cards processed earlier should not be emitted again."""
    engine.start()
    existing = document.select("#card-1")[0]
    discovered.clear()

    document._notify([Mutation(target=document.root, added_nodes=[existing])])
    await asyncio.sleep(SETTLE)

    assert discovered == []
    engine.stop()


@pytest.mark.asyncio
async def test_malformed_notification_skipped(engine, document, discovered):
    """Malformed notifications should be skipped without losing the batch."""
    engine.start()
    discovered.clear()
    row = document.select(".row")[0]

    document._notify([
        Mutation(target=row, added_nodes=None),
        object(),
    ])
    document.insert_html(row, "plain text " + CARD.format(title="Survivor"))
    await asyncio.sleep(SETTLE)

    assert [c.a["aria-label"] for c in discovered] == ["Survivor"]
    engine.stop()


@pytest.mark.asyncio
async def test_callback_failure_does_not_stop_batch(document):
    """A failing callback should not stop the remaining cards."""
    seen = []

    def on_discovered(card):
        if card.get("id") == "card-1":
            raise RuntimeError("boom")
        seen.append(card)

    engine = DiscoveryEngine(document, on_discovered, debounce_ms=DEBOUNCE_MS)
    engine.start()

    assert ids(seen) == ["card-2", "card-3"]
    engine.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending_batch(engine, document, discovered):
    """stop should drop the pending batch and its timer."""
    engine.start()
    discovered.clear()

    document.insert_html(document.root, CARD.format(title="Late"))
    engine.stop()
    await asyncio.sleep(SETTLE)

    assert discovered == []
    assert engine.get_status()["is_running"] is False


# =============================================================================
# Navigation
# =============================================================================


@pytest.mark.asyncio
async def test_navigation_without_dom_change_rescans(engine, document, discovered):
    """A location change alone should trigger a full rescan."""
    engine.start()
    discovered.clear()

    document.navigate("https://example.test/browse/genre/83")

    assert ids(discovered) == ["card-1", "card-2", "card-3"]
    assert engine.get_status()["location"] == "https://example.test/browse/genre/83"
    engine.stop()


@pytest.mark.asyncio
async def test_navigation_with_new_content(engine, document, discovered):
    """New page content after navigation should be discovered."""
    engine.start()
    discovered.clear()

    document.navigate(
        "https://example.test/search?q=dune",
        '<div class="slider-item" id="dune"><a aria-label="Dune"></a></div>',
    )
    await asyncio.sleep(SETTLE)

    assert ids(discovered) == ["dune"]
    engine.stop()


@pytest.mark.asyncio
async def test_navigation_drops_pending_batch(engine, document, discovered):
    """Navigation should discard the pending batch in favour of a rescan."""
    engine.start()
    row = document.select(".row")[0]
    document.insert_html(row, CARD.format(title="Pending"))
    discovered.clear()

    document.navigate("https://example.test/latest")
    await asyncio.sleep(SETTLE)

    # The rescan picks up the pending card; the dropped batch does not emit it again.
    labels = [c.get("id") or c.a["aria-label"] for c in discovered]
    assert labels == ["card-1", "card-2", "card-3", "Pending"]
    engine.stop()


@pytest.mark.asyncio
async def test_status(engine, document):
    """get_status should report the engine state."""
    engine.start()

    status = engine.get_status()

    assert status == {
        "is_running": True,
        "state": "idle",
        "pending_notifications": 0,
        "processed_count": 3,
        "location": "https://example.test/browse",
    }
    engine.stop()
