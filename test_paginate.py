from tfq.paginate import (
    Pagination,
    RunListOptions,
    StateVersionListOptions,
    WorkspaceListOptions,
    page_size_for,
    paginate,
)


def pages_of(*pages):
    """fetch() serving the given item lists as consecutive pages."""
    seen = []

    def fetch(options):
        seen.append(options.page_number)
        i = options.page_number - 1
        next_page = options.page_number + 1 if i + 1 < len(pages) else 0
        return list(pages[i]), Pagination(current_page=options.page_number, next_page=next_page)

    fetch.seen = seen
    return fetch


def test_collects_every_page():
    fetch = pages_of([1, 2], [3, 4], [5])
    assert paginate(RunListOptions(), fetch) == [1, 2, 3, 4, 5]
    assert fetch.seen == [1, 2, 3]


def test_stops_at_limit_and_truncates():
    fetch = pages_of([1, 2], [3, 4], [5])
    assert paginate(StateVersionListOptions(), fetch, limit=3) == [1, 2, 3]
    assert fetch.seen == [1, 2]


def test_augmenter_runs_before_every_page():
    fetch = pages_of(["a"], ["b"], ["c"])
    calls = []

    def augment(options):
        calls.append(options.page_number)
        options.search = "prod"

    options = WorkspaceListOptions()
    paginate(options, fetch, augmenter=augment)

    assert calls == [1, 2, 3]
    assert options.query_params()["search[name]"] == "prod"


def test_same_driver_for_every_option_shape():
    for options in (StateVersionListOptions(), RunListOptions(), WorkspaceListOptions()):
        assert paginate(options, pages_of([1], [2])) == [1, 2]
        assert options.page_number == 2


def test_empty_result():
    assert paginate(RunListOptions(), pages_of([])) == []


def test_pagination_from_meta():
    meta = {"pagination": {"current-page": 2, "next-page": 3, "total-pages": 4, "total-count": 380}}
    p = Pagination.from_meta(meta)
    assert (p.current_page, p.next_page, p.total_pages, p.total_count) == (2, 3, 4, 380)

    last = Pagination.from_meta({"pagination": {"current-page": 4, "next-page": None}})
    assert last.next_page == 0
    assert Pagination.from_meta(None).next_page == 0


def test_query_params():
    options = StateVersionListOptions(organization="acme", workspace="net-prod", page_size=1)
    assert options.query_params() == {
        "page[number]": 1,
        "page[size]": 1,
        "filter[organization][name]": "acme",
        "filter[workspace][name]": "net-prod",
    }
    assert RunListOptions(workspace_names="net-prod").query_params()["filter[workspace_names]"] == "net-prod"


def test_page_size_for():
    assert page_size_for(1) == 1
    assert page_size_for(20) == 20
    assert page_size_for(99999) == 100
    assert page_size_for(0) == 100
