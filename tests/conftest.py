# tests/conftest.py
"""Shared fixtures for the profile crawler tests."""

import pytest

from profilecrawl.database import LocalSqliteStore


FULL_PROFILE_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Jane Doe (@janedoe) | ExampleSocial</title>
  <meta property="og:title" content="Jane Doe (@janedoe) | ExampleSocial">
  <meta property="og:description" content="Photographer and traveller. Capturing light in small places.">
  <meta property="og:image" content="https://cdn.example.com/avatars/janedoe.jpg">
  <meta property="og:image:secure_url" content="https://cdn.example.com/covers/janedoe-cover.jpg">
</head>
<body>
  <header class="profile-header">
    <h1>Jane Doe</h1>
    <div class="profile-stats">
      <span class="stat-item">5.6K followers</span>
      <span class="stat-item">1,234 posts</span>
      <span class="stat-item">2.3M likes</span>
      <span class="follow-count">12 K</span>
    </div>
  </header>
  <section class="about">
    <p>Jane shoots film and digital across three continents, mostly street and landscape work.
    Prints and commissions are available through the shop linked below.</p>
    <p>Based in Lisbon, usually somewhere else. Replies to messages on weekdays only.</p>
  </section>
  <nav class="links">
    <a href="https://janedoe.photo">Portfolio</a>
    <a href="https://shop.janedoe.photo/prints">Shop</a>
    <a href="https://janedoe.photo">Portfolio again</a>
    <a href="/janedoe/followers">Followers</a>
    <a href="mailto:jane@example.com">Email</a>
    <a href="http://[broken">Broken</a>
  </nav>
  <footer>
    <p>ExampleSocial is a place to share your work with people who care about it.
    Terms, privacy and cookie policies apply to all accounts on this service.</p>
  </footer>
</body>
</html>
"""


@pytest.fixture
def store():
    """In-memory SQLite store, closed after the test."""
    db = LocalSqliteStore("sqlite:///:memory:")
    yield db
    db.close()


@pytest.fixture
def profile_html():
    """A complete profile page, comfortably above the escalation size threshold."""
    return FULL_PROFILE_HTML
