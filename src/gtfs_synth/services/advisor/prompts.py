"""Prompt templates for the schedule and stop placement advisors."""

from __future__ import annotations

import json
from enum import Enum
from string import Template


class PromptKind(str, Enum):
    SCHEDULE_ANALYSIS = "schedule_analysis"
    STOP_OPTIMIZATION = "stop_optimization"


SCHEDULE_ANALYSIS_TEMPLATE = Template(
    """Analyze this real street route obtained from OpenStreetMap to plan a transit service.

Route data:
- Total distance: $distance_km km
- Estimated travel time: $duration_min minutes
- Number of stops: $stop_count
- Stops: $stops

Service parameters:
- Target frequency: $frequency minutes
- Vehicle capacity: $capacity passengers
- Service hours: $start_time - $end_time
- Transport type: $transport_mode

Answer with a single JSON object shaped like:
{
  "optimalTrips": {
    "totalTrips": number,
    "peakHourTrips": number,
    "offPeakTrips": number,
    "justification": "how the numbers were derived"
  },
  "schedule": {
    "peakHours": {"start": "HH:MM", "end": "HH:MM", "frequency": number},
    "offPeakHours": {"start": "HH:MM", "end": "HH:MM", "frequency": number}
  },
  "recommendations": ["recommendation 1", "recommendation 2"]
}

Take into account real travel time against the target frequency, capacity against
expected demand, operating efficiency and rider experience.
"""
)

STOP_OPTIMIZATION_TEMPLATE = Template(
    """Optimize the stops of this transit route using real OpenStreetMap data.

Current route:
- Origin: $origin
- Destination: $destination
- Intermediate stops: $intermediate_stops
- Total distance: $total_distance_km km
- Total time: $total_time_min minutes

Urban context:
- Zone type: $zone_type
- Population density: $population_density
- Points of interest: $points_of_interest

Answer with a single JSON object shaped like:
{
  "optimizedStops": [
    {
      "stop_id": "string",
      "stop_name": "string",
      "stop_lat": number,
      "stop_lon": number,
      "stop_sequence": number,
      "justification": "why this stop matters"
    }
  ],
  "routeSegments": [
    {
      "from_stop": "string",
      "to_stop": "string",
      "distance_km": number,
      "estimated_time_min": number,
      "demand_level": "high|medium|low"
    }
  ],
  "recommendations": ["optimization recommendation"]
}

Keep 300-800 m between urban stops, favour transfer points, accessibility and real demand.
"""
)

_TEMPLATES = {
    PromptKind.SCHEDULE_ANALYSIS: SCHEDULE_ANALYSIS_TEMPLATE,
    PromptKind.STOP_OPTIMIZATION: STOP_OPTIMIZATION_TEMPLATE,
}


def render_prompt(kind: PromptKind, context: dict) -> str:
    """Fill the template for ``kind``; lists and dicts are rendered as JSON."""
    values = {
        key: json.dumps(value, ensure_ascii=False) if isinstance(value, (list, dict)) else value
        for key, value in context.items()
    }
    return _TEMPLATES[PromptKind(kind)].safe_substitute(values)
