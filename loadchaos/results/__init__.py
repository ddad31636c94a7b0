"""Result reporting, export and charts."""
