"""Web novel chapter scraper and EPUB binder.

This package scrapes the chapters of a serialized web novel published
on a WordPress blog, strips the page boilerplate, and binds the
chapters of each volume into an EPUB file, with an optional single
page HTML preview.

The modules in this package are:

* ``config.py`` – The volume configuration model (one JSON file per
  volume) and the process-wide settings read from ``NOVELBIND_*``
  environment variables.

* ``extractor.py`` – Functions responsible for downloading chapter
  pages and reducing them to an HTML fragment holding exactly one
  chapter. The extraction routines use ``httpx`` and ``bs4`` together
  with the chapter markers the site puts around every chapter.

* ``styles.py`` – Compiles the SCSS style sheet with ``libsass``.

* ``packaging.py`` – Renders chapter documents and the preview with
  Jinja2 templates and writes the EPUB archive.

* ``assembler.py`` – Drives the extractor for every chapter of a
  volume, in order, and hands the result to the packaging layer.

* ``main.py`` – The command line launcher. It resolves volume names to
  configuration files and builds volumes in a bounded process pool.

* ``errors.py`` – The exceptions that abort a volume build.
"""

__version__ = "0.1.0"
