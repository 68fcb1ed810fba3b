from math import floor, isfinite

from errors import InvalidRequest

# average emissions in g/km
EMISSION_FACTORS = {"car": 120, "van": 180}

FORMULA = "Savings = [(Passengers+1) * Dist * Base] - [Dist * Base]"


def round_half_up(value: float, digits: int = 1) -> float:
    scale = 10 ** digits
    return floor(value * scale + 0.5) / scale


def calculate_co2(distance_km: float, passengers: int, vehicle_type: str = "car") -> dict:
    """CO2 avoided by sharing one vehicle instead of everyone driving alone.

    savedKg = ((passengers+1) * dist * base - dist * base) / 1000, rounded to 0.1 kg.
    One eco-credit is earned for every 0.5 kg saved.
    """
    if vehicle_type not in EMISSION_FACTORS:
        raise InvalidRequest(f"vehicleType must be one of {', '.join(EMISSION_FACTORS)}")
    if not isfinite(distance_km):
        raise InvalidRequest("distanceKm must be a finite number")
    if distance_km < 0 or passengers < 0:
        raise InvalidRequest("distanceKm and passengers must not be negative")
    base = EMISSION_FACTORS[vehicle_type]
    separate = (passengers + 1) * distance_km * base
    shared = distance_km * base
    if not isfinite(separate):
        raise InvalidRequest("distanceKm is too large")
    saved_kg = round_half_up((separate - shared) / 1000)
    return {
        "savedKg": saved_kg,
        "credits": floor(saved_kg * 2),
        "formula": FORMULA,
    }


def estimate_trip_co2(distance_km: float) -> float:
    # default co2Saved for a newly offered trip
    return round_half_up(distance_km * 0.3)
