"""storyreel — compile narrated story scenes into a single video.

Each scene's still image becomes a slowly zooming clip, clips are chained
with timed crossfades, per-scene narration is concatenated losslessly, and
both are muxed into one file. All media work is done by ffmpeg.
"""
