# HTTP surface
