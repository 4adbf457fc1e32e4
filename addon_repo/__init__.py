"""
Kodi addon repository: builds addons.xml (plus checksum records) from a
directory of addon packages and serves it together with the addon archives.
"""
