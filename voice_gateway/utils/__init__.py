# Utils module initialization
