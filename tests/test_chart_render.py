from concurrent.futures import ThreadPoolExecutor

from matplotlib._pylab_helpers import Gcf

from reportflow.workers.graph.render import ChartRenderer

RECORDS = [
    {"region": "north", "revenue": 120.5},
    {"region": "south", "revenue": 98.0},
    {"region": "east", "revenue": 80.0},
    {"region": "north", "revenue": 143.25},
]

SUGGESTIONS = [
    {"type": "bar", "title": "Revenue by region", "xAxis": "region", "yAxis": "revenue"},
    {"type": "pie", "title": "Region share", "xAxis": "region"},
]


def test_charts_render_from_many_threads_without_pyplot_state():
    renderer = ChartRenderer(width=320, height=240)

    def _render(index):
        suggestion = SUGGESTIONS[index % len(SUGGESTIONS)]
        return renderer.render_one(index, suggestion, RECORDS)

    with ThreadPoolExecutor(max_workers=8) as pool:
        charts = list(pool.map(_render, range(16)))

    assert all(chart is not None for chart in charts)
    assert all(chart["imageBytes"].startswith(b"\x89PNG") for chart in charts)
    assert len({chart["id"] for chart in charts}) == 16
    assert Gcf.get_num_fig_managers() == 0
