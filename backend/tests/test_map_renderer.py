from domain.models import (
    CATEGORY_STYLES,
    SELECTED_ZOOM,
    ActiveFilterSet,
    LocationCategory,
    PointOfInterest,
)
from services.map_renderer import (
    EMPTY_STATE_MESSAGE,
    IncrementalMapRenderer,
    RenderState,
    RenderStatus,
)
from services.map_surface import MapContainer
from services.render_scheduler import CooperativeScheduler

CATEGORIES = list(LocationCategory)


def _points(n):
    return [
        PointOfInterest(
            id=i,
            name=f"Point {i}",
            category=CATEGORIES[i % len(CATEGORIES)],
            lat=1.0 + (i % 600) * 0.01,
            lon=100.0 + (i % 700) * 0.01,
            address="Malaysia",
        )
        for i in range(n)
    ]


def _renderer(batch_size=300, events=None):
    scheduler = CooperativeScheduler()
    sink = events if events is not None else []
    renderer = IncrementalMapRenderer(scheduler, on_activate=sink.append, batch_size=batch_size)
    assert renderer.mount(MapContainer(800, 600))
    return renderer, scheduler


def test_large_collection_renders_in_bounded_batches():
    renderer, scheduler = _renderer(batch_size=300)

    render_pass = renderer.render(_points(1200), ActiveFilterSet.all())

    assert render_pass.status == RenderStatus.SCHEDULED
    assert render_pass.batch_count == 4
    assert renderer.state == RenderState.BATCH_RENDERING
    # nothing is placed until the scheduler runs
    assert renderer.surface.marker_count == 0

    counts = []
    while scheduler.run_next():
        counts.append(renderer.surface.marker_count)

    assert counts == [300, 600, 900, 1200]
    assert scheduler.scheduled_count == 4
    assert renderer.state == RenderState.IDLE


def test_all_categories_filter_reproduces_full_collection():
    renderer, scheduler = _renderer(batch_size=7)
    points = _points(50)

    renderer.render(points, ActiveFilterSet.all())
    scheduler.run_until_idle()

    assert renderer.surface.marker_count == len(points)


def test_filtered_render_only_places_active_categories():
    renderer, scheduler = _renderer()
    filters = ActiveFilterSet.of([LocationCategory.HOSPITAL])

    render_pass = renderer.render(_points(40), filters)
    scheduler.run_until_idle()

    assert render_pass.marker_total == 10
    placed = renderer.surface.markers()
    assert {m.poi.category for m in placed} == {LocationCategory.HOSPITAL}
    assert all(m.color == CATEGORY_STYLES[LocationCategory.HOSPITAL].color for m in placed)


def test_each_pass_clears_previous_markers():
    renderer, scheduler = _renderer()
    points = _points(20)
    renderer.render(points, ActiveFilterSet.all())
    scheduler.run_until_idle()
    assert renderer.surface.marker_count == 20

    renderer.render(points, ActiveFilterSet.of([LocationCategory.SHELTER]))
    assert renderer.surface.marker_count == 0
    scheduler.run_until_idle()
    assert renderer.surface.marker_count == 5


def test_empty_filter_set_leaves_map_empty_and_idle():
    renderer, scheduler = _renderer()
    renderer.render(_points(8), ActiveFilterSet.all())
    scheduler.run_until_idle()

    render_pass = renderer.render(_points(8), ActiveFilterSet(frozenset()))

    assert render_pass.status == RenderStatus.EMPTY
    assert renderer.surface.marker_count == 0
    assert renderer.state == RenderState.IDLE
    assert scheduler.pending == 0


def test_new_pass_makes_stale_batches_noops():
    renderer, scheduler = _renderer(batch_size=10)
    renderer.render(_points(100), ActiveFilterSet.all())
    scheduler.run_next()
    assert renderer.surface.marker_count == 10

    renderer.render(_points(100), ActiveFilterSet.of([LocationCategory.RECYCLING]))
    scheduler.run_until_idle()

    assert renderer.surface.marker_count == 25
    assert {m.poi.category for m in renderer.surface.markers()} == {LocationCategory.RECYCLING}


def test_unmount_mid_render_stops_pending_batches():
    renderer, scheduler = _renderer(batch_size=10)
    renderer.render(_points(100), ActiveFilterSet.all())
    scheduler.run_next()
    surface = renderer.surface

    renderer.unmount()
    scheduler.run_until_idle()

    assert renderer.surface is None
    assert surface.marker_count == 0


def test_missing_container_degrades_without_raising():
    scheduler = CooperativeScheduler()
    renderer = IncrementalMapRenderer(scheduler, on_activate=lambda e: None)

    assert renderer.mount(None) is False
    render_pass = renderer.render(_points(5), ActiveFilterSet.all())

    assert render_pass.status == RenderStatus.SURFACE_UNAVAILABLE
    assert render_pass.empty_state == EMPTY_STATE_MESSAGE
    assert scheduler.pending == 0


def test_activation_reports_point_then_recenters():
    events = []
    renderer, scheduler = _renderer(events=events)
    points = _points(4)
    renderer.render(points, ActiveFilterSet.all())
    scheduler.run_until_idle()

    views_at_emit = []
    renderer.on_activate = lambda e: (events.append(e), views_at_emit.append(renderer.surface.view))

    assert renderer.surface.activate(2) is True

    target = points[2]
    assert events[-1].poi == target
    assert (events[-1].view.lat, events[-1].view.lon, events[-1].view.zoom) == (target.lat, target.lon, SELECTED_ZOOM)
    # the view moves only after the event went out
    assert views_at_emit[0] != events[-1].view
    assert renderer.surface.view == events[-1].view


def test_activating_unknown_marker_does_nothing():
    events = []
    renderer, scheduler = _renderer(events=events)
    renderer.render(_points(3), ActiveFilterSet.all())
    scheduler.run_until_idle()

    assert renderer.surface.activate(999) is False
    assert events == []
