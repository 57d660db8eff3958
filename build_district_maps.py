#!/usr/bin/env python3
"""Fetch congressional district archives and build TopoJSON maps (see districtmaps.pipeline)."""

from districtmaps.pipeline import main

if __name__ == "__main__":
    raise SystemExit(main())
