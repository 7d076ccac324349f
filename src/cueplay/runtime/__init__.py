"""
Playback runtime for cueplay.

Modules here own the live playback session: the chunk queue, the playback
clock, the controller state machine, completion detection, the idle watchdog
and the daemon channel. Nothing in this package imports settings at module
level; configuration is passed in by the player.
"""
