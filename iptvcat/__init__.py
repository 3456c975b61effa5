"""
iptvcat - verify IPTV playlists and regenerate partitioned indexes.

Deutsch:
    Prüft IPTV-Playlisten und erzeugt daraus partitionierte Indizes.
"""

__version__ = "0.4.0"
