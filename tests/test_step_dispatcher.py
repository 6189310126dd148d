"""Step dispatcher tests: translation of transport steps into tracker records."""

import pytest

from MCRingDosimetry.core.data_models import PrimaryFate
from MCRingDosimetry.core.step_dispatcher import StepDispatcher, VolumeNames
from MCRingDosimetry.utils.logging import DiagnosticSink
from tests.conftest import make_primary, make_step


@pytest.fixture
def dispatcher(tracker, catalog) -> StepDispatcher:
    return StepDispatcher(tracker, catalog)


def electron(event_id=0, current='World', following='World', **kwargs):
    values = dict(track_id=5, parent_id=1, particle_name='e-', pdg_code=11, kinetic_energy_keV=40.0)
    values.update(kwargs)
    return make_step(event_id, current, following, **values)


class TestReferencePlanes:

    def test_transmitted_primary(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(make_step(0, 'World', 'UpstreamDetector'))
        dispatcher.on_step(make_step(0, 'World', 'DownstreamDetector', kinetic_energy_keV=121.5))
        report = dispatcher.end_event()
        assert report.primaries[0].fate == PrimaryFate.TRANSMITTED
        assert report.primaries[0].energy_downstream_keV == pytest.approx(121.5)

    def test_backward_crossing_ignored(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(make_step(0, 'World', 'UpstreamDetector', direction=(0.0, 0.0, -1.0)))
        assert not dispatcher.tracker.primary(1).detected_upstream

    def test_logical_names_accepted(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(make_step(0, 'WorldLog', 'UpstreamDetectorLog'))
        assert dispatcher.tracker.primary(1).detected_upstream

    def test_secondary_at_downstream(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(electron(0, 'World', 'DownstreamDetector', creator_process='compt'))
        dispatcher.on_step(electron(0, 'World', 'DownstreamDetector', track_id=6))
        report = dispatcher.end_event()
        assert [s.creator_process for s in report.secondaries] == ['compt', 'Unknown']
        assert report.secondaries[0].parent_identity == 1
        assert not report.primaries[0].detected_downstream


class TestFilterAndWater:

    def test_filter_counters(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(make_step(0, 'World', 'Filter'))
        dispatcher.on_step(make_step(0, 'Filter', 'Filter'))
        dispatcher.on_step(make_step(0, 'Filter', 'World', post_kinetic_energy_keV=120.0))
        dispatcher.on_step(make_step(0, 'World', 'ContainerTop'))
        dispatcher.on_step(make_step(0, 'ContainerTop', 'ContainerWall'))
        report = dispatcher.end_event()
        counters = report.plane_counters
        assert counters.filter_entries == 1
        assert counters.filter_exits == 1
        assert counters.container_entries == 1
        # left the filter and never reached the water
        assert report.primaries[0].fate == PrimaryFate.ABSORBED_UNRESOLVED

    def test_killed_in_filter(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(make_step(0, 'UpstreamDetector', 'World'))
        dispatcher.on_step(make_step(0, 'World', 'Filter'))
        dispatcher.on_step(make_step(0, 'FilterLog', 'FilterLog', energy_deposit_keV=121.78, track_killed=True))
        report = dispatcher.end_event()
        assert report.primaries[0].fate == PrimaryFate.ABSORBED_FILTER
        assert report.total_deposit_keV == 0.0

    def test_water_entry_and_deposit(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary(line_index=0)])
        dispatcher.on_step(make_step(0, 'Filter', 'World'))
        dispatcher.on_step(make_step(0, 'ContainerTop', 'WaterRing_1'))
        dispatcher.on_step(make_step(0, 'WaterRing_1', 'WaterRing_1', energy_deposit_keV=60.0))
        dispatcher.on_step(electron(0, 'WaterRing_1', 'WaterRing_1', energy_deposit_keV=40.0))
        dispatcher.on_step(make_step(0, 'WaterRing_1', 'WaterRing_2'))
        report = dispatcher.end_event()
        assert report.region_deposits_keV[1] == pytest.approx(100.0)
        assert report.region_line_deposits_keV[1][0] == pytest.approx(100.0)
        # ring-to-ring moves are not water entries
        assert report.plane_counters.water_entries == 1
        assert report.primaries[0].fate == PrimaryFate.ABSORBED_WATER

    def test_electron_entering_water(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(electron(0, 'ContainerTop', 'WaterRing_0'))
        report = dispatcher.end_event()
        assert report.plane_counters.electrons_in_water == 1
        assert report.plane_counters.water_entries == 0

    def test_counting_planes(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        for plane in ('PreFilterPlane', 'PostFilterPlane', 'PreWaterPlane', 'PostWaterPlane'):
            dispatcher.on_step(make_step(0, 'World', plane))
        dispatcher.on_step(make_step(0, 'World', 'PreFilterPlane', direction=(0.0, 0.0, -1.0)))
        dispatcher.on_step(electron(0, 'World', 'PostFilterPlane'))
        counters = dispatcher.end_event().plane_counters
        assert counters.pre_filter_plane == 1
        assert counters.post_filter_plane == 1
        assert counters.pre_water_plane == 1
        assert counters.post_water_plane == 1


class TestContainerPlanes:

    def test_container_tally(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(make_step(0, 'World', 'PreContainerPlane'))
        dispatcher.on_step(make_step(0, 'World', 'PostContainerPlane', direction=(0.0, 0.0, -1.0),
                                     kinetic_energy_keV=90.0))
        dispatcher.on_step(electron(0, 'World', 'PostContainerPlane', direction=(0.0, 0.0, -1.0)))
        dispatcher.on_step(electron(0, 'World', 'PostContainerPlane', kinetic_energy_keV=15.0))
        tally = dispatcher.end_event().container_tally
        assert tally.pre_photons == 1
        assert tally.pre_photon_energy_keV == pytest.approx(121.78)
        assert tally.post_photons_backward == 1
        assert tally.post_photon_energy_backward_keV == pytest.approx(90.0)
        assert tally.post_electrons_backward == 1
        assert tally.post_electrons_forward == 1
        assert tally.post_electron_energy_forward_keV == pytest.approx(15.0)


class TestEventFiltering:

    def test_foreign_event_steps_ignored(self, dispatcher: StepDispatcher):
        dispatcher.begin_event(4, [make_primary()])
        dispatcher.on_step(make_step(3, 'WaterRing_0', 'WaterRing_0', energy_deposit_keV=50.0))
        report = dispatcher.end_event()
        assert report.total_deposit_keV == 0.0
        assert dispatcher.ignored_steps == 1


class TestVolumeNames:

    def test_custom_names(self, tracker, catalog):
        names = VolumeNames.from_dict({'upstream_detector': 'PlaneA', 'downstream_detector': 'PlaneB'})
        dispatcher = StepDispatcher(tracker, catalog, volume_names=names)
        dispatcher.begin_event(0, [make_primary()])
        dispatcher.on_step(make_step(0, 'World', 'PlaneA'))
        dispatcher.on_step(make_step(0, 'World', 'PlaneB'))
        assert dispatcher.end_event().n_transmitted == 1

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            VolumeNames.from_dict({'detector': 'X'})


class TestDiagnostics:

    def test_deposit_records_for_early_events(self, tracker, catalog, caplog):
        sink = DiagnosticSink(max_events=1)
        dispatcher = StepDispatcher(tracker, catalog, diagnostics=sink)
        with caplog.at_level('INFO', logger='mc_ring_dosimetry.diagnostics'):
            for event_id in (0, 1):
                dispatcher.begin_event(event_id, [make_primary()])
                dispatcher.on_step(make_step(event_id, 'WaterRing_2', 'WaterRing_2', energy_deposit_keV=5.0))
                dispatcher.end_event()
        records = [r.getMessage() for r in caplog.records if r.getMessage().startswith('WATER_DEPOSIT')]
        assert len(records) == 1
        assert 'Event 0' in records[0]
        assert 'ring=2' in records[0]
