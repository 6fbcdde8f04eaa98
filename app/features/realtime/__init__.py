# Realtime Feature
