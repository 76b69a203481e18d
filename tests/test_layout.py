from markupsafe import Markup

from datapanel.services.layout import LayoutHooks, LayoutPoint, dashboard_context, render_dashboard
from tests.mocks import WidgetTable


class NoTabsTable(WidgetTable):
    table_id = "plain_widgets"
    tabs = []
    filters = []
    has_stats = False


def test_default_header_rendered_without_hook():
    html = render_dashboard(WidgetTable(), LayoutHooks())

    assert '<h1 class="dp-heading">Widgets</h1>' in html
    assert 'id="widget-datatable"' in html
    assert 'data-table-id="widgets"' in html


def test_header_hook_replaces_default_title():
    hooks = LayoutHooks()
    hooks.add(LayoutPoint.page_header_left, lambda table: f"<h1 class='custom'>{table.title}</h1>")

    html = render_dashboard(WidgetTable(), hooks)

    assert "<h1 class='custom'>Widgets</h1>" in html
    assert "dp-heading" not in html


def test_hooks_run_in_registration_order_and_respect_entity():
    hooks = LayoutHooks()
    hooks.add("before_content", lambda table: "<p>first</p>")
    hooks.add("before_content", lambda table: "<p>second</p>")
    hooks.add("before_content", lambda table: "<p>gadgets only</p>", entity="gadget")

    rendered = hooks.render(LayoutPoint.before_content, WidgetTable())

    assert rendered == Markup("<p>first</p><p>second</p>")
    assert hooks.has("before_content", "widget")
    assert not hooks.has("after_content", "widget")


def test_tab_navigation_marks_first_tab_and_deferred_regions():
    html = render_dashboard(WidgetTable(), LayoutHooks())

    assert html.index('data-tab="info"') < html.index('data-tab="history"')
    assert html.index('data-tab="history"') < html.index('data-tab="notes"')
    assert html.count("dp-nav-tab-active") == 1
    active_at = html.index("dp-nav-tab-active")
    assert html.index('data-tab="info"', active_at) < html.index('data-tab="history"')
    assert 'class="dp-tab-content active"' in html
    assert html.count('data-deferred="true"') == 2
    assert 'data-has-tabs="true"' in html


def test_tab_empty_hook_receives_each_tab():
    hooks = LayoutHooks()
    hooks.add("tab_empty", lambda table, tab: f"<em>{tab.id} pending</em>")

    html = render_dashboard(WidgetTable(), hooks)

    assert "<em>info pending</em>" in html
    assert "<em>notes pending</em>" in html


def test_no_tabs_point_only_without_tabs():
    hooks = LayoutHooks()
    hooks.add("no_tabs", lambda table: "<div class='summary'>no tabs</div>")
    hooks.add("right_panel", lambda table: "<div class='side'>side</div>")

    with_tabs = render_dashboard(WidgetTable(), hooks)
    without_tabs = render_dashboard(NoTabsTable(), hooks)

    assert "no tabs" not in with_tabs
    assert "<div class='summary'>no tabs</div>" in without_tabs
    assert "<div class='side'>side</div>" in without_tabs
    assert 'data-has-tabs="false"' in without_tabs


def test_single_panel_layout_has_no_detail_panel():
    class SingleTable(NoTabsTable):
        layout = "single-panel"

    html = render_dashboard(SingleTable(), LayoutHooks())

    assert "dp-detail-panel" not in html


def test_statistics_box_and_hook():
    hooks = LayoutHooks()
    hooks.add("statistics", lambda table: "<div class='dp-stat-card'>extra</div>")

    html = render_dashboard(WidgetTable(), hooks, stats={"total_widgets": 5})

    assert 'data-stat="total_widgets"' in html
    assert "Total Widgets" in html
    assert "extra" in html
    assert "dp-statistics-container" not in render_dashboard(NoTabsTable(), hooks)


def test_filter_controls_render_current_values():
    html = render_dashboard(WidgetTable(), LayoutHooks(), {"status": "inactive", "created": "2024-01-01,2024-02-01"})

    assert 'name="status_filter"' in html
    assert '<option value="inactive" selected>Inactive</option>' in html
    assert 'id="created-filter-from"' in html
    assert 'value="2024-02-01"' in html


def test_dashboard_context_escapes_nothing_from_hooks():
    hooks = LayoutHooks()
    hooks.add("after_content", lambda table: "<script>window.ready = true</script>")

    context = dashboard_context(WidgetTable(), hooks, data_url="/datatables/widgets/data")

    assert context["after_content"] == Markup("<script>window.ready = true</script>")
    assert context["data_url"] == "/datatables/widgets/data"
    assert context["has_default_header"] is True
