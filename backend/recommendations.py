"""Bantay Backend: Recommendation Templates

Turns a Medium/High prediction plus barangay context into templated
action items (patrol, community, infrastructure, investigation,
prevention).
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

from config import DEFAULT_POPULATION, SERIOUS_CRIMES
from models import Prediction, Recommendation
from timeseries import parse_incident_date

logger = logging.getLogger("bantay.recommendations")

_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass
class AreaContext:
    """Everything the templates need beyond the prediction itself."""
    population: int = DEFAULT_POPULATION
    total_incidents: int = 0
    municipality_rate: float = 0.0
    peak_hours: list[str] = field(default_factory=list)
    peak_days: list[str] = field(default_factory=list)

    @property
    def crime_rate(self) -> float:
        return (self.total_incidents / self.population) * 1000 if self.population > 0 else 0.0

    @property
    def density_per_thousand(self) -> float:
        return self.population / 1000 if self.population > 0 else 1.0

    @property
    def above_average(self) -> bool:
        return self.crime_rate > self.municipality_rate * 1.2


def _incident_hour(inc) -> int | None:
    time_text = getattr(inc, "confinementTime", None)
    if time_text:
        try:
            return int(str(time_text).split(":")[0]) % 24
        except (ValueError, IndexError):
            pass
    dt = parse_incident_date(getattr(inc, "confinementDate", None))
    return dt.hour if dt else None


def crime_patterns(incidents: list) -> tuple[list[str], list[str]]:
    """Top 3 hours and top 2 weekdays by incident count."""
    hours: Counter = Counter()
    days: Counter = Counter()
    for inc in incidents:
        hour = _incident_hour(inc)
        if hour is not None:
            hours[hour] += 1
        dt = parse_incident_date(getattr(inc, "confinementDate", None))
        if dt:
            days[dt.weekday()] += 1
    peak_hours = [f"{h}:00" for h, _ in sorted(hours.items(), key=lambda kv: (-kv[1], kv[0]))[:3]]
    peak_days = [_DAY_NAMES[d] for d, _ in sorted(days.items(), key=lambda kv: (-kv[1], kv[0]))[:2]]
    return peak_hours, peak_days


def municipality_rate(incident_count: int, populations: list[int]) -> float:
    total = sum(p for p in populations if p and p > 0)
    return (incident_count / total) * 1000 if total > 0 else 0.0


def forecast_trend(prediction: Prediction) -> float:
    """Percent change from the first to the last forecast month."""
    if len(prediction.forecast) < 2:
        return 0.0
    first = prediction.forecast[0].predicted
    last = prediction.forecast[-1].predicted
    return ((last - first) / max(1.0, first)) * 100


def priority_for(prediction: Prediction, ctx: AreaContext, increasing: bool) -> str:
    score = (
        (3 if prediction.riskLevel == "High" else 1)
        + (2 if ctx.above_average else 0)
        + (1 if increasing else 0)
        + (1 if prediction.probability > 0.7 else 0)
    )
    if score >= 5:
        return "Critical"
    if score >= 4:
        return "High"
    if score >= 2:
        return "Medium"
    return "Low"


def _confidence(prediction: Prediction, factor: float) -> float:
    return min(1.0, max(0.0, prediction.confidence * factor))


def build_recommendations(prediction: Prediction, ctx: AreaContext) -> list[dict]:
    """Template fields for one prediction (area fields are added by the caller)."""
    if prediction.riskLevel not in ("Medium", "High"):
        return []

    crime_type = prediction.crimeType or ""
    upper_type = crime_type.upper()
    place = prediction.barangay
    trend = forecast_trend(prediction)
    increasing = trend > 10
    priority = priority_for(prediction, ctx, increasing)
    dense = ctx.density_per_thousand > 5
    large = ctx.population > 5000
    recs = []

    # Patrol
    if prediction.riskLevel == "High" or ctx.above_average:
        description = "Deploy additional police patrols"
        rationale = f"High risk prediction ({prediction.probability * 100:.1f}%) for {crime_type} in {place}"
        if ctx.peak_hours:
            hours = ", ".join(ctx.peak_hours[:3])
            description += f" during peak hours ({hours})"
            rationale += f". Historical data shows peak activity during {hours}"
        if ctx.peak_days:
            description += f", especially on {ctx.peak_days[0]}"
        if dense:
            description += ". High population density area requires increased visibility"
            rationale += f". High population density ({round(ctx.density_per_thousand * 1000)} per km²) increases risk"
        if increasing:
            rationale += ". Forecast shows increasing trend"

        recs.append({
            "category": "patrol",
            "priority": priority,
            "title": "Enhanced Patrol Coverage for High-Crime Area" if ctx.above_average else "Increase Patrol Frequency",
            "description": description,
            "rationale": rationale,
            "expectedImpact": (
                f"Reduce crime incidents by 25-35% in this high-crime area (current rate: "
                f"{ctx.crime_rate:.2f} per 1000, vs municipality avg: {ctx.municipality_rate:.2f})"
                if ctx.above_average else "Reduce crime incidents by 20-30%"
            ),
            "implementationCost": "High" if dense else "Medium",
            "timeframe": "Immediate" if prediction.riskLevel == "High" else "Short-term",
            "successMetrics": [
                "Reduction in reported incidents",
                "Response time improvement",
                f"Crime rate reduction to below {ctx.municipality_rate * 1.1:.2f} per 1000",
            ],
            "riskFactors": ["Resource constraints", "Community resistance"]
                           + (["High population density requires more resources"] if dense else []),
            "confidence": _confidence(prediction, 1.0),
        })

    # Community awareness
    description = "Organize community meetings and awareness campaigns"
    rationale = f"Proactive prevention for {crime_type} in {place} ({prediction.riskLevel} risk)"
    if "THEFT" in upper_type:
        description = "Organize community watch programs and property protection workshops"
        rationale += ". Theft prevention requires community vigilance"
    elif "ASSAULT" in upper_type:
        description = "Organize conflict resolution workshops and community mediation programs"
        rationale += ". Assault prevention requires addressing root causes"
    if large:
        description += ". Large community requires multiple sessions across different zones"
    if ctx.total_incidents > 10:
        rationale += f". {ctx.total_incidents} historical cases indicate ongoing concern"

    recs.append({
        "category": "community",
        "priority": "High" if prediction.riskLevel == "High" else "Medium",
        "title": f"{place} Community Safety Program",
        "description": description,
        "rationale": rationale,
        "expectedImpact": f"Improve community vigilance and reporting. Target: {round(ctx.population * 0.1)} active participants",
        "implementationCost": "Medium" if large else "Low",
        "timeframe": "Immediate" if prediction.riskLevel == "High" else "Short-term",
        "successMetrics": [
            "Community participation rate (target: 10% of population)",
            "Reported suspicious activities increase",
            "Community satisfaction survey scores",
        ],
        "riskFactors": ["Low community engagement", "Language barriers"]
                       + (["Large population requires more resources"] if large else []),
        "confidence": _confidence(prediction, 0.8),
    })

    # Infrastructure
    if ctx.above_average or dense:
        recs.append({
            "category": "infrastructure",
            "priority": "High" if ctx.above_average else "Medium",
            "title": f"Security Infrastructure Enhancement for {place}",
            "description": "Install security cameras, improve street lighting, and establish security checkpoints in high-risk areas",
            "rationale": f"{place} has {'above-average' if ctx.above_average else 'high-density'} crime rate "
                         f"({ctx.crime_rate:.2f} per 1000) requiring infrastructure improvements",
            "expectedImpact": "Reduce crime by 15-25% through deterrence",
            "implementationCost": "High",
            "timeframe": "Medium-term",
            "successMetrics": [
                "Number of security cameras installed",
                "Street lighting coverage improvement",
                "Crime reduction in monitored areas",
                "Community safety perception improvement",
            ],
            "riskFactors": ["Budget constraints", "Maintenance requirements", "Privacy concerns"],
            "confidence": _confidence(prediction, 0.75),
        })

    # Serious crime investigation
    if upper_type in SERIOUS_CRIMES:
        title = "Enhanced Investigation Protocol"
        description = "Implement specialized investigation procedures and victim support services"
        impact = "Improve case resolution and victim support"
        if "DRUG" in upper_type:
            title = f"Drug Enforcement Strategy for {place}"
            description = "Implement specialized drug investigation procedures, community outreach, and rehabilitation programs"
            impact = f"Improve drug case resolution and community safety. Target: {round(ctx.total_incidents * 0.3)} cases resolved"
        elif "RAPE" in upper_type or "ASSAULT" in upper_type:
            title = f"Victim Support and Protection Program for {place}"
            description = "Establish victim support services, safe reporting mechanisms, and specialized investigation units"
            impact = "Improve victim support and case resolution rates"

        recs.append({
            "category": "investigation",
            "priority": priority,
            "title": title,
            "description": description,
            "rationale": f"Serious crime type ({crime_type}) in {place} requires enhanced investigation protocols. "
                         f"{ctx.total_incidents} historical cases indicate ongoing concern",
            "expectedImpact": impact,
            "implementationCost": "High",
            "timeframe": "Immediate",
            "successMetrics": [
                "Case resolution rate improvement",
                "Community safety perception",
                "Evidence collection quality",
                "Victim satisfaction scores",
            ],
            "riskFactors": ["Resource requirements", "Training needs", "Specialized personnel availability"],
            "confidence": _confidence(prediction, 0.9),
        })

    # Drug prevention
    if "DRUG" in upper_type:
        recs.append({
            "category": "prevention",
            "priority": "High" if prediction.riskLevel == "High" else "Medium",
            "title": f"Drug Prevention Program for {place}",
            "description": "Implement community drug awareness programs, youth engagement activities, and rehabilitation support",
            "rationale": f"Drug-related crime ({crime_type}) in {place} requires preventive community measures. "
                         f"{ctx.total_incidents} cases indicate need for intervention",
            "expectedImpact": "Reduce drug-related incidents by 20-30% through community education and early intervention",
            "implementationCost": "Medium",
            "timeframe": "Short-term",
            "successMetrics": [
                f"Community participation (target: {round(ctx.population * 0.15)} people)",
                "Drug awareness levels (pre/post surveys)",
                "Reported incidents reduction",
                "Youth engagement program participation",
            ],
            "riskFactors": ["Community resistance", "Resource allocation", "Stigma around drug issues"],
            "confidence": _confidence(prediction, 0.7),
        })

    # Rising forecast
    if increasing and trend > 15:
        recs.append({
            "category": "prevention",
            "priority": "High",
            "title": f"Urgent Intervention for Rising {crime_type} in {place}",
            "description": f"Implement immediate intervention measures to address the {trend:.1f}% projected increase in {crime_type}",
            "rationale": f"Forecast shows significant increase ({trend:.1f}%) in {crime_type} for {place}. Immediate action required",
            "expectedImpact": "Prevent forecasted increase and stabilize crime rates",
            "implementationCost": "High",
            "timeframe": "Immediate",
            "successMetrics": [
                "Prevent forecasted crime increase",
                "Stabilize crime rate",
                "Response time to incidents",
                "Community engagement in prevention",
            ],
            "riskFactors": ["Urgent resource allocation needed", "Coordination challenges", "Time constraints"],
            "confidence": _confidence(prediction, 0.85),
        })

    logger.debug(f"{len(recs)} recommendation(s) for {place} {crime_type} ({priority})")
    return recs


def to_records(prediction: Prediction, templates: list[dict]) -> list[Recommendation]:
    return [
        Recommendation(
            **tpl,
            barangay=prediction.barangay,
            municipality=prediction.municipality,
            province=prediction.province,
            country=prediction.country,
            crimeType=prediction.crimeType,
            status="pending",
        )
        for tpl in templates
    ]
