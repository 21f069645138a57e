"""Table parsing quality heuristics and table rendering to Markdown and CSV."""