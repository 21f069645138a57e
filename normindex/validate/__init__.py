"""Quality metrics and citation parity checks for a built index."""