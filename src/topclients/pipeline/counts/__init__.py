from .aggregators import GlobalAggregator, KeyCounter, LocalAggregator, bucket_for_key
from .parser import ClientIPExtractor, extract_client_ip
from .reducer import PartialTopNReducer, TopNMerger, TopNReducer
from .selector import SelectorState, TopNSelector, merge_top_n, select_top_n
from .writer import PartialCountsWriter
