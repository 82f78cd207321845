# tests/conftest.py
"""
Shared test fixtures and configuration for pytest.

Team Avatar and friends: users with posts (has_many), teams
(belongs_to_many through users_teams) and a mentor (belongs_to).
"""

import copy
import json
import sqlite3

import pytest

from sheetbender import config
from sheetbender.defaults import settings
from sheetbender.fields import Catalog, FieldDescriptor, FieldKind
from sheetbender.sources import DatabaseSource, ListSource
from sheetbender.utils import reset_format_cache


NATIONS = [
    {'value': 'air', 'label': 'Air Nomads', 'color': 'orange'},
    {'value': 'water', 'label': 'Water Tribe', 'children': [
        {'value': 'north', 'label': 'Northern Water Tribe'},
        {'value': 'south', 'label': 'Southern Water Tribe'},
    ]},
    {'value': 'earth', 'label': 'Earth Kingdom'},
    {'value': 'fire', 'label': 'Fire Nation', 'color': 'red'},
]

ELEMENTS = [
    {'value': 'air', 'label': 'Air'},
    {'value': 'water', 'label': 'Water'},
    {'value': 'earth', 'label': 'Earth'},
    {'value': 'fire', 'label': 'Fire'},
]

USERS = [
    {'id': 1, 'name': 'Aang', 'age': 12, 'nation': 'air',
     'elements': ['air', 'water', 'earth', 'fire'],
     'last_seen': '2024-05-10T01:42:35.000Z', 'is_bender': True,
     'profile': {'bison': 'Appa', 'lemur': 'Momo'},
     'avatar': [{'url': 'https://cdn.example.com/aang.png'},
                {'url': 'https://cdn.example.com/aang_glider.png'}],
     'home': [{'name': 'Air Nomads'}, {'name': 'Southern Air Temple'}],
     'mentor_id': 2},
    {'id': 2, 'name': 'Katara', 'age': 14, 'nation': 'south', 'elements': ['water'],
     'last_seen': '2024-05-11T12:00:00Z', 'is_bender': True, 'profile': None,
     'avatar': None, 'home': None, 'mentor_id': None},
    {'id': 3, 'name': 'Sokka', 'age': 15, 'nation': 'south', 'elements': [],
     'last_seen': None, 'is_bender': False, 'profile': {'weapon': 'boomerang'},
     'avatar': None, 'home': None, 'mentor_id': None},
    {'id': 4, 'name': 'Toph', 'age': 12, 'nation': 'earth', 'elements': ['earth'],
     'last_seen': '2024-05-12T23:30:00Z', 'is_bender': True, 'profile': None,
     'avatar': None, 'home': [{'name': 'Earth Kingdom'}, {'name': 'Gaoling'}],
     'mentor_id': None},
    {'id': 5, 'name': 'Zuko', 'age': 16, 'nation': 'fire', 'elements': ['fire'],
     'last_seen': '2024-05-13T08:15:00Z', 'is_bender': True, 'profile': None,
     'avatar': None, 'home': None, 'mentor_id': None},
]

POSTS = [
    {'id': 1, 'user_id': 1, 'title': 'Airbending basics'},
    {'id': 2, 'user_id': 1, 'title': 'Flying bison care'},
    {'id': 3, 'user_id': 1, 'title': 'Glider repair'},
    {'id': 4, 'user_id': 2, 'title': 'Healing water'},
    {'id': 5, 'user_id': 4, 'title': 'Metalbending'},
    {'id': 6, 'user_id': 4, 'title': 'Seismic sense'},
]

TEAMS = [
    {'id': 1, 'name': 'Team Avatar'},
    {'id': 2, 'name': 'Air Nomads'},
    {'id': 3, 'name': 'Fire Nation'},
]

USERS_TEAMS = [(1, 1), (1, 2), (2, 1), (4, 1), (5, 3)]

JSON_COLUMNS = ('elements', 'profile', 'avatar', 'home')


@pytest.fixture(autouse=True)
def restore_settings():
    """Keep global settings and the global config manager from leaking between tests."""
    saved = copy.deepcopy(settings)
    config._config_manager = None
    yield
    settings.clear()
    settings.update(saved)
    reset_format_cache()
    config._config_manager = None


@pytest.fixture
def catalog():
    """Catalog with users, posts and teams."""
    catalog = Catalog()
    catalog.define('teams', [FieldDescriptor('name', title='Team')], title_field='name')
    catalog.define('posts', [
        FieldDescriptor('title', title='Post Title'),
        FieldDescriptor('user_id', FieldKind.INTEGER),
    ], title_field='title')
    catalog.define('users', [
        FieldDescriptor('name', title='Name'),
        FieldDescriptor('age', FieldKind.INTEGER, title='Age'),
        FieldDescriptor('nation', FieldKind.SELECT, title='Nation', enum=NATIONS),
        FieldDescriptor('elements', FieldKind.MULTIPLE_SELECT, title='Elements', enum=ELEMENTS),
        FieldDescriptor('last_seen', FieldKind.DATETIME, title='Last Seen',
                        show_time=True, timezone='client'),
        FieldDescriptor('is_bender', FieldKind.BOOLEAN, title='Bender'),
        FieldDescriptor('profile', FieldKind.JSON),
        FieldDescriptor('avatar', FieldKind.ATTACHMENT),
        FieldDescriptor('home', FieldKind.REGION),
        FieldDescriptor('mentor_id', FieldKind.INTEGER),
        FieldDescriptor('mentor', FieldKind.BELONGS_TO, target='users', foreign_key='mentor_id'),
        FieldDescriptor('posts', FieldKind.HAS_MANY, target='posts', foreign_key='user_id'),
        FieldDescriptor('teams', FieldKind.BELONGS_TO_MANY, target='teams',
                        through='users_teams', foreign_key='user_id', other_key='team_id'),
    ], title_field='name')
    return catalog


@pytest.fixture
def users(catalog):
    return catalog['users']


def nested_users():
    """USERS with posts, teams and mentor already attached."""
    teams_by_id = {t['id']: t for t in TEAMS}
    users_by_id = {u['id']: u for u in USERS}
    records = []
    for user in USERS:
        record = copy.deepcopy(user)
        record['posts'] = [dict(p) for p in POSTS if p['user_id'] == user['id']]
        record['teams'] = [dict(teams_by_id[team_id])
                           for user_id, team_id in USERS_TEAMS if user_id == user['id']]
        mentor = users_by_id.get(user['mentor_id'])
        record['mentor'] = {'id': mentor['id'], 'name': mentor['name']} if mentor else None
        records.append(record)
    return records


@pytest.fixture
def list_source():
    """In-memory source holding the nested users."""
    return ListSource({'users': nested_users(), 'posts': POSTS, 'teams': TEAMS})


@pytest.fixture
def sqlite_conn():
    """In-memory SQLite database with users, posts, teams and users_teams."""
    conn = sqlite3.connect(':memory:')
    cursor = conn.cursor()
    cursor.execute("""
                   CREATE TABLE users
                   (
                       id        INTEGER PRIMARY KEY,
                       name      TEXT NOT NULL,
                       age       INTEGER,
                       nation    TEXT,
                       elements  TEXT,
                       last_seen TEXT,
                       is_bender INTEGER,
                       profile   TEXT,
                       avatar    TEXT,
                       home      TEXT,
                       mentor_id INTEGER
                   )
                   """)
    cursor.execute("CREATE TABLE posts (id INTEGER PRIMARY KEY, user_id INTEGER, title TEXT)")
    cursor.execute("CREATE TABLE teams (id INTEGER PRIMARY KEY, name TEXT)")
    cursor.execute("CREATE TABLE users_teams (user_id INTEGER, team_id INTEGER)")

    for user in USERS:
        row = dict(user)
        for column in JSON_COLUMNS:
            if row[column] is not None:
                row[column] = json.dumps(row[column])
        cursor.execute(
            "INSERT INTO users (id, name, age, nation, elements, last_seen, is_bender, "
            "profile, avatar, home, mentor_id) VALUES (:id, :name, :age, :nation, :elements, "
            ":last_seen, :is_bender, :profile, :avatar, :home, :mentor_id)", row)
    cursor.executemany("INSERT INTO posts (id, user_id, title) VALUES (:id, :user_id, :title)", POSTS)
    cursor.executemany("INSERT INTO teams (id, name) VALUES (:id, :name)", TEAMS)
    cursor.executemany("INSERT INTO users_teams (user_id, team_id) VALUES (?, ?)", USERS_TEAMS)
    conn.commit()
    yield conn
    conn.close()


@pytest.fixture
def db_source(sqlite_conn):
    return DatabaseSource(sqlite_conn)
