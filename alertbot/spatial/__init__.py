"""spatial — great-circle distance helpers shared by geofencing and targeting."""
