"""Test basic package imports."""


def test_package_import():
    """Test that the main package can be imported."""
    import rental_hub

    assert rental_hub.__version__ == "0.1.0"


def test_main_module_import():
    """Test that main modules can be imported."""
    from rental_hub import application, interfaces, main, orchestrator

    assert callable(main.main)
    assert application.RentalHubApplication
    assert orchestrator.CrawlOrchestrator
    assert interfaces.ISourceAdapter


def test_models_import():
    """Test that model modules can be imported."""
    from rental_hub.models import config, crawl, criteria, listing, notification, search

    assert listing.Listing and criteria.Criteria and crawl.CrawlRun
    assert config.Configuration and notification.Notification and search.SearchResult
