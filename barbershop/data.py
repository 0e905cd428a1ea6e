# barbershop/data.py

# Seeded into an empty services table: (id, name, duration minutes, price)
DEFAULT_SERVICES = [
    (1, "Tuns", 30, 80),
    (2, "Tuns & Barba", 30, 100),
    (3, "Precision Haircut", 60, 150),
]

MIN_SERVICE_DURATION = 5
MAX_SERVICE_DURATION = 240

# Opening windows per weekday (0=Mon ... 6=Sun) as ("HH:MM", "HH:MM"), end exclusive.
# A weekday missing from the map is a closed day.
OPENING_HOURS = {
    0: ("10:00", "19:00"),
    1: ("10:00", "19:00"),
    2: ("10:00", "19:00"),
    3: ("10:00", "19:00"),
    4: ("10:00", "19:00"),
    5: ("10:00", "13:00"),
}

shop_settings = {
    "slot_minutes": 30,
    # a blocked hour occupies one slot
    "blocked_hour_minutes": 30,
    "blockable_start": "10:00",
    "blockable_end": "19:00",
    "max_blocked_hours": 20,
    "default_country_code": "+40",
}

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
