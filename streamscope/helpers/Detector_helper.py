############################################################################################################################################
# Format Auto-Detector
#
# Looks at a sample of recent lines and proposes a parse configuration.
#
# Candidates, confidence = matching lines / non empty lines:
#   1. single-value  23.5
#   2. xy-data       23.5,60.1     two numbers, delimiter , tab space ;
#   3. json          {"t": 23.5}   at least one numeric key
#   4. csv           1,2,3,4       numeric fields, consistent field count > 1
#
# 1-3 are accepted above DETECTION_THRESHOLD in this order, csv above DETECTION_CSV_THRESHOLD.
# Otherwise the best guess is returned with format "unknown" so the operator can be told that no
# reliable format was found.
#
# Runs on demand, never on the ingestion path.
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import json
from typing import List, Sequence
#
from streamscope.config import (DETECTION_THRESHOLD, DETECTION_CSV_THRESHOLD, DETECTION_DELIMITERS,
                                DELIMITER_NAMES, NUMBER_RE, PRESET_COLORS)
from streamscope.helpers.Stream_models import DetectionResult
from streamscope.helpers.Config_helper import ParseConfig, FieldConfig, SeriesConfig
from streamscope.helpers.General_helper import is_number
#

def _color(index: int) -> str:
    return PRESET_COLORS[index % len(PRESET_COLORS)]

def _is_number(token: str) -> bool:
    return NUMBER_RE.match(token) is not None

def _unknown(confidence: float, description: str) -> DetectionResult:
    return DetectionResult("unknown", {}, [], confidence, description)

def _delimited_config(delimiter: str, names: List[str], series_keys: List[str], chart_kind: str) -> dict:
    return {
        "enabled":           True,
        "mode":              "delimiter",
        "delimiter_enabled": True,
        "delimiter":         delimiter,
        "fields":            [FieldConfig(i, name).to_dict() for i, name in enumerate(names)],
        "series":            [SeriesConfig(key, color=_color(i)).to_dict() for i, key in enumerate(series_keys)],
        "chart_kind":        chart_kind,
    }

# ==============================================================================
# Candidate checks
# ==============================================================================

def detect_single_value(lines: List[str]) -> DetectionResult:
    valid = sum(1 for line in lines if _is_number(line))
    confidence = valid / len(lines) if lines else 0.

    if confidence > DETECTION_THRESHOLD:
        return DetectionResult(
            "single-value",
            _delimited_config(",", ["value"], ["value"], "line"),
            ["value"],
            confidence,
            f"Single value per line ({confidence * 100:.0f}% confidence)."
        )
    return _unknown(confidence, "Not a single value format.")

def detect_xy_data(lines: List[str]) -> DetectionResult:
    best_delimiter  = DETECTION_DELIMITERS[0]
    best_confidence = 0.

    for delimiter in DETECTION_DELIMITERS:
        valid = 0
        for line in lines:
            parts = [p.strip() for p in line.split(delimiter)]
            parts = [p for p in parts if p]
            if len(parts) == 2 and _is_number(parts[0]) and _is_number(parts[1]):
                valid += 1
        confidence = valid / len(lines) if lines else 0.
        if confidence > best_confidence:                                       # earlier delimiter wins ties
            best_confidence = confidence
            best_delimiter  = delimiter

    if best_confidence > DETECTION_THRESHOLD:
        config = _delimited_config(best_delimiter, ["x", "y"], ["y"], "xy-scatter")
        config["x_axis_field"] = "x"
        return DetectionResult(
            "xy-data",
            config,
            ["x", "y"],
            best_confidence,
            f"XY data separated by {DELIMITER_NAMES[best_delimiter]} ({best_confidence * 100:.0f}% confidence)."
        )
    return _unknown(best_confidence, "Not an XY data format.")

def detect_json(lines: List[str]) -> DetectionResult:
    valid = 0
    keys = {}                                                                  # insertion ordered set
    for line in lines:
        try:
            data = json.loads(line)
        except (ValueError, RecursionError):
            continue
        if isinstance(data, dict):
            valid += 1
            for key, value in data.items():
                if is_number(value):
                    keys[key] = None

    confidence = valid / len(lines) if lines else 0.
    detected_keys = list(keys)

    if confidence > DETECTION_THRESHOLD and detected_keys:
        config = {
            "enabled":      True,
            "mode":         "json",
            "json_enabled": True,
            "json_keys":    detected_keys,
            "series":       [SeriesConfig(key, color=_color(i)).to_dict() for i, key in enumerate(detected_keys)],
            "chart_kind":   "line",
        }
        return DetectionResult(
            "json",
            config,
            detected_keys,
            confidence,
            f"JSON with {len(detected_keys)} numeric field(s) ({confidence * 100:.0f}% confidence)."
        )
    return _unknown(confidence, "Not a JSON format.")

def detect_csv(lines: List[str]) -> DetectionResult:
    best_delimiter   = DETECTION_DELIMITERS[0]
    best_confidence  = 0.
    best_field_count = 0

    for delimiter in DETECTION_DELIMITERS:
        valid = 0
        total_fields = 0
        field_counts = []
        for line in lines:
            parts = line.split(delimiter)
            field_counts.append(len(parts))
            if len(parts) > 1 and all(_is_number(p.strip()) for p in parts):
                valid += 1
                total_fields += len(parts)

        average = total_fields / valid if valid else 0.
        consistent = all(abs(count - average) < 1 for count in field_counts)
        confidence = valid / len(lines) if (lines and consistent) else 0.

        if confidence > best_confidence:
            best_confidence  = confidence
            best_delimiter   = delimiter
            best_field_count = int(round(average))

    if best_confidence > DETECTION_CSV_THRESHOLD and best_field_count > 1:
        names = [f"field{i + 1}" for i in range(best_field_count)]
        return DetectionResult(
            "csv",
            _delimited_config(best_delimiter, names, names, "line"),
            names,
            best_confidence,
            f"CSV separated by {DELIMITER_NAMES[best_delimiter]} with {best_field_count} fields "
            f"({best_confidence * 100:.0f}% confidence)."
        )
    return _unknown(best_confidence, "Not a CSV format.")

# ==============================================================================
# Detection
# ==============================================================================

def detect_format(sample_lines: Sequence[str]) -> DetectionResult:
    """
    Propose a parse configuration for sample_lines.

    Returns the first accepted candidate, or the candidate with the highest confidence
    (format "unknown") when none is reliable.
    """
    lines = [line.strip() for line in sample_lines]
    lines = [line for line in lines if line]
    if not lines:
        return _unknown(0., "No data to analyze.")

    results = []
    for check in (detect_single_value, detect_xy_data, detect_json):
        result = check(lines)
        if result.confidence > DETECTION_THRESHOLD and result.format != "unknown":
            return result
        results.append(result)

    result = detect_csv(lines)
    if result.confidence > DETECTION_CSV_THRESHOLD and result.format != "unknown":
        return result
    results.append(result)

    return sorted(results, key=lambda r: r.confidence, reverse=True)[0]        # stable, ties keep check order

def apply_detection(config: ParseConfig, result: DetectionResult) -> ParseConfig:
    """
    New configuration with the suggestion merged into config.
    An empty suggestion returns an unchanged copy.
    """
    merged = config.to_dict()
    merged.update(result.suggested_config)
    return ParseConfig.from_dict(merged)
