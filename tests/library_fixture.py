"""
Builds a minimal darktable library.db/data.db pair for tests.
"""

import os
import sqlite3

LIBRARY_SCHEMA = """
CREATE TABLE film_rolls (id INTEGER PRIMARY KEY AUTOINCREMENT, access_timestamp INTEGER, folder VARCHAR(1024) NOT NULL);
CREATE TABLE lens (id INTEGER PRIMARY KEY AUTOINCREMENT, name VARCHAR);
CREATE TABLE models (id INTEGER PRIMARY KEY AUTOINCREMENT, name VARCHAR);
CREATE TABLE images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    film_id INTEGER,
    filename VARCHAR,
    model_id INTEGER,
    lens_id INTEGER,
    aperture REAL,
    focal_length REAL,
    crop REAL,
    import_timestamp INTEGER DEFAULT -1
);
CREATE TABLE selected_images (imgid INTEGER PRIMARY KEY);
CREATE TABLE tagged_images (imgid INTEGER, tagid INTEGER, position INTEGER, PRIMARY KEY (imgid, tagid));
"""

DATA_SCHEMA = """
CREATE TABLE tags (id INTEGER PRIMARY KEY, name VARCHAR, synonyms VARCHAR, flags INTEGER);
"""


def create_library(directory, with_data=True):
    """Create library.db (and data.db) in directory; returns the library path."""
    library_path = os.path.join(directory, "library.db")
    conn = sqlite3.connect(library_path)
    conn.executescript(LIBRARY_SCHEMA)
    conn.commit()
    conn.close()

    if with_data:
        conn = sqlite3.connect(os.path.join(directory, "data.db"))
        conn.executescript(DATA_SCHEMA)
        conn.commit()
        conn.close()

    return library_path


def _name_id(cursor, table, name):
    if name is None:
        return None
    cursor.execute(f"SELECT id FROM {table} WHERE name = ?", (name,))
    row = cursor.fetchone()
    if row:
        return row[0]
    cursor.execute(f"INSERT INTO {table} (name) VALUES (?)", (name,))
    return cursor.lastrowid


def add_image(library_path, filename, folder, lens=None, camera_model=None,
              focal_length=None, aperture=None, crop=None, import_timestamp=-1,
              selected=False):
    """Insert an image row and return its id."""
    conn = sqlite3.connect(library_path)
    cursor = conn.cursor()

    cursor.execute("SELECT id FROM film_rolls WHERE folder = ?", (folder,))
    row = cursor.fetchone()
    if row:
        film_id = row[0]
    else:
        cursor.execute("INSERT INTO film_rolls (access_timestamp, folder) VALUES (0, ?)", (folder,))
        film_id = cursor.lastrowid

    cursor.execute(
        """INSERT INTO images (film_id, filename, model_id, lens_id, aperture, focal_length, crop, import_timestamp)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (film_id, filename, _name_id(cursor, "models", camera_model), _name_id(cursor, "lens", lens),
         aperture, focal_length, crop, import_timestamp)
    )
    image_id = cursor.lastrowid

    if selected:
        cursor.execute("INSERT INTO selected_images (imgid) VALUES (?)", (image_id,))

    conn.commit()
    conn.close()
    return image_id


def query(library_path, sql, params=()):
    conn = sqlite3.connect(library_path)
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()
