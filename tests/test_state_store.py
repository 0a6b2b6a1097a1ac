import asyncio
import json
import unittest

from gymscore.core import CompetitionState, Competitor, Division, split_csv_text
from gymscore.state.store import CompetitorNotFound, StateStore, UnknownApparatus
from gymscore.storage import json_store

WOMEN_CSV = (
    "h,h,h,h,h,h,h,h\n"
    "上級,1,,佐藤 花子,9.5,9.0,8.75,9.1\n"
    "上級,1,,鈴木 美咲,9.5,9.0,8.75,9.1\n"
    "中級,2,,高橋 愛,8.0,8.5,7.9,8.2\n"
)


def _imported_store(**kwargs) -> StateStore:
    store = StateStore(**kwargs)
    asyncio.run(store.apply_csv_import(Division.WOMEN, split_csv_text(WOMEN_CSV)))
    return store


class ImportTest(unittest.TestCase):

    def test_import_replaces_competitors_and_bumps_version(self):
        store = StateStore()
        result = asyncio.run(store.apply_csv_import(Division.WOMEN, split_csv_text(WOMEN_CSV)))
        self.assertEqual(result.imported, 3)
        self.assertEqual(result.errors, [])
        self.assertEqual(result.state.version, 1)
        self.assertEqual(len(store.get_state(Division.WOMEN).competitors), 3)
        # The other division is untouched.
        self.assertEqual(store.get_state(Division.MEN).version, 0)

    def test_import_with_only_bad_rows_keeps_previous_state(self):
        store = _imported_store()
        result = asyncio.run(
            store.apply_csv_import(Division.WOMEN, [["header"], ["上級", "1"]])
        )
        self.assertEqual(result.imported, 0)
        self.assertEqual(len(result.errors), 1)
        state = store.get_state(Division.WOMEN)
        self.assertEqual(len(state.competitors), 3)
        self.assertEqual(state.version, 1)


class UpdateScoreTest(unittest.TestCase):

    def test_update_score_sets_value_and_recomputes_total(self):
        store = _imported_store()
        state = asyncio.run(store.update_score(Division.WOMEN, "w-0", "floor", "9.8"))
        competitor = state.find("w-0")
        self.assertEqual(competitor.scores["floor"], 9.8)
        self.assertEqual(competitor.total, 36.65)
        self.assertEqual(state.version, 2)

    def test_score_entry_is_visible_through_get_state(self):
        store = _imported_store()
        asyncio.run(store.update_score(Division.WOMEN, "w-0", "floor", "9.5"))
        competitor = store.get_state(Division.WOMEN).find("w-0")
        self.assertEqual(competitor.scores["floor"], 9.5)
        self.assertEqual(competitor.total, 36.35)
        self.assertEqual(store.get_state(Division.WOMEN).version, 2)

    def test_junk_value_is_stored_as_zero(self):
        store = _imported_store()
        state = asyncio.run(store.update_score(Division.WOMEN, "w-2", "vault", "abc"))
        self.assertEqual(state.find("w-2").scores["vault"], 0.0)

    def test_unknown_competitor_raises_and_leaves_state(self):
        store = _imported_store()
        with self.assertRaises(CompetitorNotFound):
            asyncio.run(store.update_score(Division.WOMEN, "w-99", "floor", 9))
        self.assertEqual(store.get_state(Division.WOMEN).version, 1)

    def test_unknown_apparatus_is_rejected(self):
        store = _imported_store()
        with self.assertRaises(UnknownApparatus):
            # Pommel horse is a men's apparatus.
            asyncio.run(store.update_score(Division.WOMEN, "w-0", "pommel", 9))

    def test_returned_state_is_a_copy(self):
        store = _imported_store()
        state = store.get_state(Division.WOMEN)
        state.competitors[0].scores["floor"] = 0.0
        self.assertEqual(store.get_state(Division.WOMEN).competitors[0].scores["floor"], 9.5)


class NameAndReplaceTest(unittest.TestCase):

    def test_set_competition_name_is_stripped(self):
        store = StateStore()
        state = asyncio.run(store.set_competition_name(Division.MEN, "  県大会  "))
        self.assertEqual(state.competitionName, "県大会")
        self.assertEqual(state.version, 1)

    def test_replace_state_recomputes_totals_and_keeps_counting_versions(self):
        store = _imported_store()
        loaded = CompetitionState(
            competitionName="loaded",
            version=57,
            competitors=[
                Competitor(
                    id="w-0",
                    name="X",
                    playerClass="上級",
                    playerGroup="1組",
                    scores={"floor": 1.0, "beam": 2.0},
                    total=100.0,
                )
            ],
        )
        state = asyncio.run(store.replace_state(Division.WOMEN, loaded))
        self.assertEqual(state.version, 2)
        self.assertEqual(state.competitors[0].total, 3.0)


class ListenerTest(unittest.TestCase):

    def test_listeners_see_every_change_in_order(self):
        store = _imported_store()
        seen = []

        async def listener(division, state):
            seen.append((division, state.version, state.find("w-0").scores["floor"]))

        store.add_listener(listener)

        async def scenario():
            await asyncio.gather(
                *(store.update_score(Division.WOMEN, "w-0", "floor", v) for v in (1, 2, 3))
            )

        asyncio.run(scenario())
        self.assertEqual([version for _, version, _ in seen], [2, 3, 4])
        self.assertEqual(seen[-1][2], store.get_state(Division.WOMEN).find("w-0").scores["floor"])

    def test_failing_listener_does_not_block_the_update(self):
        store = _imported_store()

        async def broken(division, state):
            raise RuntimeError("boom")

        store.add_listener(broken)
        state = asyncio.run(store.update_score(Division.WOMEN, "w-0", "floor", 5))
        self.assertEqual(state.find("w-0").scores["floor"], 5.0)


def test_persisting_store_writes_snapshot_and_audit(storage_dir):
    store = _imported_store(persist=True)
    asyncio.run(store.update_score(Division.WOMEN, "w-1", "beam", 9.9))

    snapshot = json.loads((storage_dir / "divisions" / "women.json").read_text(encoding="utf-8"))
    assert snapshot["version"] == 2
    assert snapshot["competitors"][1]["scores"]["beam"] == 9.9

    events = json_store.read_latest_events(division=Division.WOMEN)
    assert [event["action"] for event in events] == ["UPDATE_SCORE", "IMPORT_CSV"]

    restored = json_store.load_division_states()
    assert restored[Division.WOMEN].find("w-1").scores["beam"] == 9.9
