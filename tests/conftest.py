"""Pytest configuration and shared fixtures."""

import pytest

from tests.fakes import FakeCapability, FakeClock


# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def capability():
    """Scripted capability with the model available."""
    return FakeCapability()


@pytest.fixture
def clock():
    """Manually advanced monotonic clock."""
    return FakeClock()


@pytest.fixture
def sample_job_html():
    """Job posting page with navigation and cookie noise around the posting."""
    return """
    <!DOCTYPE html>
    <html>
    <head><title>Backend Engineer - Acme Corp</title></head>
    <body>
        <nav><a href="/">Home</a><a href="/jobs">All jobs</a></nav>
        <div class="cookie-banner">We use cookies to improve your experience.</div>
        <main>
            <h1>Backend Engineer</h1>
            <p>Acme Corp is hiring a Backend Engineer to build the APIs behind our platform.</p>
            <h2>Requirements</h2>
            <ul>
                <li>3+ years of Python</li>
                <li>Experience with asyncio and PostgreSQL</li>
            </ul>
            <h2>Benefits</h2>
            <ul>
                <li>Remote friendly</li>
                <li>Learning budget</li>
            </ul>
        </main>
        <script>trackPageView();</script>
        <footer>Copyright Acme Corp</footer>
    </body>
    </html>
    """


@pytest.fixture
def sample_html_without_main():
    """Page without a main-content container."""
    return """
    <!DOCTYPE html>
    <html>
    <head><title>Data Analyst</title></head>
    <body>
        <header>Site header</header>
        <div class="wrapper">
            <h1>Data Analyst</h1>
            <p>Analyze product data and build dashboards for the growth team.</p>
            <p>Salary: $60,000 - $80,000. Location: Austin, TX.</p>
        </div>
        <div class="advertisement">Buy now!</div>
        <footer>Footer links</footer>
    </body>
    </html>
    """
