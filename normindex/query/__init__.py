"""Query models, candidate ranking and fusion, pinpointing, citations and output."""