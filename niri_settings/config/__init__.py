from .backups import BackupEntry, format_file_size, list_backups, restore_backup
from .classifier import (
    MANAGED_NODES,
    ConfigAnalysis,
    NodeClassification,
    analyze_config,
    analyze_config_bytes,
    analyze_config_text,
    classify_node,
)
from .consolidation import (
    ConsolidationAnalysis,
    ConsolidationSuggestion,
    LayerRuleEffectKey,
    WindowRuleEffectKey,
    analyze_rules,
    apply_layer_consolidation,
    apply_window_consolidation,
    create_merged_regex,
)
from .errors import ConfigError
from .replace import (
    SmartReplaceResult,
    generate_minimal_config,
    generate_replaced_config,
    smart_replace_config,
)
from .rule_loader import RuleImportResult, load_layer_rules, load_rules_from_config, load_window_rules
from .rules import (
    BlockOutFrom,
    FloatingPosition,
    LayerRule,
    LayerRuleMatch,
    OpenBehavior,
    WindowRule,
    WindowRuleMatch,
)

__all__ = [
    "BackupEntry",
    "BlockOutFrom",
    "ConfigAnalysis",
    "ConfigError",
    "ConsolidationAnalysis",
    "ConsolidationSuggestion",
    "FloatingPosition",
    "LayerRule",
    "LayerRuleEffectKey",
    "LayerRuleMatch",
    "MANAGED_NODES",
    "NodeClassification",
    "OpenBehavior",
    "RuleImportResult",
    "SmartReplaceResult",
    "WindowRule",
    "WindowRuleEffectKey",
    "WindowRuleMatch",
    "analyze_config",
    "analyze_config_bytes",
    "analyze_config_text",
    "analyze_rules",
    "apply_layer_consolidation",
    "apply_window_consolidation",
    "classify_node",
    "create_merged_regex",
    "format_file_size",
    "generate_minimal_config",
    "generate_replaced_config",
    "list_backups",
    "load_layer_rules",
    "load_rules_from_config",
    "load_window_rules",
    "restore_backup",
    "smart_replace_config",
]
