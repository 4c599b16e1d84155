
from .jsonl_dataset import JsonLinesDatasetProvider, write_dataset_dir
from .synthetic import SyntheticDatasetProvider

__all__ = [
	"JsonLinesDatasetProvider",
	"SyntheticDatasetProvider",
	"write_dataset_dir",
]
