"""
Target-window presets: administrator-curated rules that parameterize matching.

A preset is a tagged variant keyed by ``preset_type``; each variant carries its
own typed ``rules_json`` payload. The dispatcher only ever reads active rows and
never mutates them.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from utils.constants import WEEKDAY_RULE_ANY, WEEKDAY_RULE_CUSTOM


class PresetType(str, Enum):
    """Preset variant tag."""

    DATE_HORIZON = "date_horizon"
    TIME_BLOCK = "time_block"
    WEEKDAY_RULE = "weekday_rule"


class WeekdayMode(str, Enum):
    """How a weekday rule restricts the slot's local weekday."""

    ANY = "any"
    CUSTOM = "custom"


class DateHorizonRules(BaseModel):
    days_ahead: int = Field(..., ge=0)


class TimeBlockRules(BaseModel):
    # Kept as raw strings; malformed bounds make the matcher skip the block
    start: Optional[str] = None
    end: Optional[str] = None


class WeekdayRuleRules(BaseModel):
    mode: Optional[WeekdayMode] = None


class BasePreset(BaseModel):
    """Fields shared by every preset variant."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    key: str
    label: str = ""
    active: bool = True
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DateHorizonPreset(BasePreset):
    preset_type: Literal["date_horizon"] = "date_horizon"
    rules_json: DateHorizonRules


class TimeBlockPreset(BasePreset):
    preset_type: Literal["time_block"] = "time_block"
    rules_json: TimeBlockRules


class WeekdayRulePreset(BasePreset):
    preset_type: Literal["weekday_rule"] = "weekday_rule"
    rules_json: WeekdayRuleRules = Field(default_factory=WeekdayRuleRules)

    @property
    def mode(self) -> Optional[WeekdayMode]:
        """
        Effective mode: the explicit rule payload wins, otherwise the
        well-known preset keys imply one. Anything else has no mode.
        """
        if self.rules_json.mode is not None:
            return self.rules_json.mode
        return {
            WEEKDAY_RULE_ANY: WeekdayMode.ANY,
            WEEKDAY_RULE_CUSTOM: WeekdayMode.CUSTOM,
        }.get(self.key)


TargetWindowPreset = Annotated[
    Union[DateHorizonPreset, TimeBlockPreset, WeekdayRulePreset],
    Field(discriminator="preset_type"),
]

preset_adapter: TypeAdapter = TypeAdapter(TargetWindowPreset)


class ResolvedWindow(BaseModel):
    """A customer's selection with every preset key looked up."""

    model_config = ConfigDict(frozen=True)

    date_horizon: DateHorizonPreset
    weekday_rule: WeekdayRulePreset
    time_blocks: List[TimeBlockPreset]


class PresetCatalog(BaseModel):
    """
    Read-only snapshot of the active presets, refreshed once per cycle and
    passed explicitly to whoever needs it.
    """

    model_config = ConfigDict(frozen=True)

    date_horizons: Dict[str, DateHorizonPreset] = Field(default_factory=dict)
    time_blocks: Dict[str, TimeBlockPreset] = Field(default_factory=dict)
    weekday_rules: Dict[str, WeekdayRulePreset] = Field(default_factory=dict)

    @classmethod
    def from_presets(
        cls,
        presets: Iterable[Union[DateHorizonPreset, TimeBlockPreset, WeekdayRulePreset]],
    ) -> "PresetCatalog":
        """Index presets by key per type, ignoring inactive rows."""
        date_horizons: Dict[str, DateHorizonPreset] = {}
        time_blocks: Dict[str, TimeBlockPreset] = {}
        weekday_rules: Dict[str, WeekdayRulePreset] = {}

        for preset in presets:
            if not preset.active:
                continue
            if isinstance(preset, DateHorizonPreset):
                date_horizons[preset.key] = preset
            elif isinstance(preset, TimeBlockPreset):
                time_blocks[preset.key] = preset
            elif isinstance(preset, WeekdayRulePreset):
                weekday_rules[preset.key] = preset

        return cls(
            date_horizons=date_horizons,
            time_blocks=time_blocks,
            weekday_rules=weekday_rules,
        )

    def resolve(self, selection) -> Optional[ResolvedWindow]:
        """
        Look up the presets a selection refers to.

        Returns None when the date horizon or weekday rule is unknown, or when
        none of the chosen time blocks exist. Unknown time block keys are dropped.
        """
        date_horizon = self.date_horizons.get(selection.date_horizon_key or "")
        weekday_rule = self.weekday_rules.get(selection.weekday_rule_key or "")
        blocks = [
            self.time_blocks[key]
            for key in selection.time_block_keys
            if key in self.time_blocks
        ]

        if date_horizon is None or weekday_rule is None or not blocks:
            return None

        return ResolvedWindow(
            date_horizon=date_horizon,
            weekday_rule=weekday_rule,
            time_blocks=blocks,
        )
