"""Environmental impact model: CO2, toxic waste and sustainability score."""
